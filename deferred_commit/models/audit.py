"""
Audit Models for Deferred Commit

Every delete, undo, dismissal and finalization is logged for audit purposes.
This provides:
1. Traceability of what the user removed and got back
2. Debugging information when a commit or restore fails
3. Ability to reconstruct the order in which competing events won

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


MAX_ITEM_REPR = 200


class UndoEventType(str, Enum):
    """
    Types of events we audit.

    Every transition of the coordinator has its own event type.
    """
    # Deletion
    DELETE_REQUESTED = "delete_requested"
    DELETE_SUPERSEDED = "delete_superseded"
    COMMIT_COMPLETED = "commit_completed"
    COMMIT_FAILED = "commit_failed"

    # Undo
    UNDO_REQUESTED = "undo_requested"
    UNDO_REJECTED = "undo_rejected"
    RESTORE_COMPLETED = "restore_completed"
    RESTORE_FAILED = "restore_failed"
    RESTORE_SKIPPED = "restore_skipped"

    # Resolution
    DELETION_FINALIZED = "deletion_finalized"
    DELETION_DISMISSED = "deletion_dismissed"

    # Session
    COORDINATOR_CLOSED = "coordinator_closed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def describe_item(item: Any) -> str:
    """Short printable form of a deleted item for the audit trail."""
    text = repr(item)
    if len(text) > MAX_ITEM_REPR:
        return text[:MAX_ITEM_REPR - 3] + "..."
    return text


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every coordinator transition creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: UndoEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which delete request is this about?
    token: Optional[int] = Field(
        default=None,
        description="Sequence token of the delete request"
    )
    item_repr: Optional[str] = Field(
        default=None,
        max_length=MAX_ITEM_REPR,
        description="Printable form of the deleted item"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by every event of one delete request"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "token": self.token,
            "item_repr": self.item_repr,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_json_line(self) -> str:
        """
        Convert to a single line suitable for an append-only JSON-lines file.
        """
        return json.dumps(self.to_log_dict(), default=str)

    @classmethod
    def from_json_line(cls, line: str) -> "AuditEvent":
        """Parse a line written by to_json_line."""
        return cls.model_validate(json.loads(line))


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.delete_requested(token, item, correlation_id)
        event = AuditEventBuilder.undo_rejected(reason)
    """

    @staticmethod
    def delete_requested(
        token: int,
        item: Any,
        timeout_ms: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.DELETE_REQUESTED,
            token=token,
            item_repr=describe_item(item),
            correlation_id=correlation_id,
            description=f"Item deleted, undo available for {timeout_ms} ms",
            details={
                "timeout_ms": timeout_ms,
            },
            is_user_action=True,
        )

    @staticmethod
    def delete_superseded(
        token: int,
        superseded_by: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.DELETE_SUPERSEDED,
            token=token,
            correlation_id=correlation_id,
            description="Pending deletion abandoned by a newer delete",
            details={
                "superseded_by": superseded_by,
            },
        )

    @staticmethod
    def commit_completed(
        token: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.COMMIT_COMPLETED,
            token=token,
            correlation_id=correlation_id,
            description="Delete applied to storage",
        )

    @staticmethod
    def commit_failed(
        token: int,
        item: Any,
        error_message: str,
        rolled_back: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.COMMIT_FAILED,
            severity=AuditSeverity.ERROR,
            token=token,
            item_repr=describe_item(item),
            correlation_id=correlation_id,
            description="Delete could not be applied to storage",
            error_message=error_message,
            details={
                "rolled_back": rolled_back,
            },
        )

    @staticmethod
    def undo_requested(
        token: int,
        item: Any,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.UNDO_REQUESTED,
            token=token,
            item_repr=describe_item(item),
            correlation_id=correlation_id,
            description="User undid the deletion",
            is_user_action=True,
        )

    @staticmethod
    def undo_rejected(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.UNDO_REJECTED,
            severity=AuditSeverity.WARNING,
            description=f"Undo rejected: {reason}",
            details={
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def restore_completed(
        token: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.RESTORE_COMPLETED,
            token=token,
            correlation_id=correlation_id,
            description="Deleted item restored to storage",
        )

    @staticmethod
    def restore_failed(
        token: int,
        item: Any,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.RESTORE_FAILED,
            severity=AuditSeverity.ERROR,
            token=token,
            item_repr=describe_item(item),
            correlation_id=correlation_id,
            description="Deleted item could not be restored",
            error_message=error_message,
        )

    @staticmethod
    def restore_skipped(
        token: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.RESTORE_SKIPPED,
            severity=AuditSeverity.WARNING,
            token=token,
            correlation_id=correlation_id,
            description="Restore skipped, the delete never reached storage",
        )

    @staticmethod
    def deletion_finalized(
        token: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.DELETION_FINALIZED,
            token=token,
            correlation_id=correlation_id,
            description="Undo window elapsed, deletion is permanent",
        )

    @staticmethod
    def deletion_dismissed(
        token: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.DELETION_DISMISSED,
            token=token,
            correlation_id=correlation_id,
            description="Undo prompt dismissed, deletion kept",
            is_user_action=True,
        )

    @staticmethod
    def coordinator_closed(abandoned_token: Optional[int]) -> AuditEvent:
        return AuditEvent(
            event_type=UndoEventType.COORDINATOR_CLOSED,
            token=abandoned_token,
            description="Undo session closed",
            details={
                "had_pending": abandoned_token is not None,
            },
        )
