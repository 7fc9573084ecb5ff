"""
Audit Logger

DESIGN DECISION: Every delete, undo, dismissal and finalization is logged.
This provides:
1. Traceability of which competing event won a race
2. Debugging capability when commit or restore fails
3. User can see history of what they removed and restored

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace the events of one delete request
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from deferred_commit.audit.storage import AuditStorageInterface
from deferred_commit.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_delete_requested(
        self,
        token: int,
        item: Any,
        timeout_ms: int,
        correlation_id: UUID,
    ) -> None:
        """Log a delete request."""
        await self.log(AuditEventBuilder.delete_requested(
            token=token,
            item=item,
            timeout_ms=timeout_ms,
            correlation_id=correlation_id,
        ))

    async def log_delete_superseded(
        self,
        token: int,
        superseded_by: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.delete_superseded(
            token=token,
            superseded_by=superseded_by,
            correlation_id=correlation_id,
        ))

    async def log_commit_completed(self, token: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.commit_completed(
            token=token,
            correlation_id=correlation_id,
        ))

    async def log_commit_failed(
        self,
        token: int,
        item: Any,
        error_message: str,
        rolled_back: bool,
        correlation_id: UUID,
    ) -> None:
        """Log a failed commit and whether the pending state was rolled back."""
        await self.log(AuditEventBuilder.commit_failed(
            token=token,
            item=item,
            error_message=error_message,
            rolled_back=rolled_back,
            correlation_id=correlation_id,
        ))

    async def log_undo_requested(
        self,
        token: int,
        item: Any,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.undo_requested(
            token=token,
            item=item,
            correlation_id=correlation_id,
        ))

    async def log_undo_rejected(self, reason: str) -> None:
        await self.log(AuditEventBuilder.undo_rejected(reason=reason))

    async def log_restore_completed(self, token: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.restore_completed(
            token=token,
            correlation_id=correlation_id,
        ))

    async def log_restore_failed(
        self,
        token: int,
        item: Any,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.restore_failed(
            token=token,
            item=item,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_restore_skipped(self, token: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.restore_skipped(
            token=token,
            correlation_id=correlation_id,
        ))

    async def log_deletion_finalized(self, token: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.deletion_finalized(
            token=token,
            correlation_id=correlation_id,
        ))

    async def log_deletion_dismissed(self, token: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.deletion_dismissed(
            token=token,
            correlation_id=correlation_id,
        ))

    async def log_coordinator_closed(self, abandoned_token: Optional[int]) -> None:
        await self.log(AuditEventBuilder.coordinator_closed(
            abandoned_token=abandoned_token,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    One is minted per delete request and passed to every event
    that request produces.
    """
    return uuid4()
