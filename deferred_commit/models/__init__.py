"""
Data Models Package

Pydantic models for the pending slot, the coordinator state machine
and the audit trail.
"""

from deferred_commit.models.deletion import (
    CoordinatorState,
    PendingDeletion,
)
from deferred_commit.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditSeverity,
    UndoEventType,
    describe_item,
)

__all__ = [
    # Deletion models
    "CoordinatorState",
    "PendingDeletion",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditSeverity",
    "UndoEventType",
    "describe_item",
]
