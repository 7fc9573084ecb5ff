"""
Coordinator Factory

Ties configuration and the audit trail to a new coordinator.

DESIGN DECISION: There is no shared coordinator. Each screen or session
builds its own with create_coordinator() and owns it until aclose().
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

from deferred_commit.audit import AuditLogger, AuditStorageInterface, create_audit_storage
from deferred_commit.config import Settings, get_settings
from deferred_commit.coordinator import DeferredCommitCoordinator, UndoError


T = TypeVar("T")


def create_coordinator(
    commit: Callable[[T], Awaitable[Any]],
    restore: Callable[[T], Awaitable[Any]],
    *,
    on_timeout: Optional[Callable[[], None]] = None,
    on_error: Optional[Callable[[UndoError], None]] = None,
    settings: Optional[Settings] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> DeferredCommitCoordinator[T]:
    """
    Factory function to create a coordinator for one session.

    Args:
        commit: Applies a delete to storage.
        restore: Puts a deleted item back.
        on_timeout: Called when a deletion becomes permanent.
        on_error: Receives commit and restore failures.
        settings: Defaults to get_settings().
        audit_storage: Overrides the storage chosen from settings.

    Returns:
        A new, idle coordinator
    """
    settings = settings or get_settings()
    coordinator_settings = settings.coordinator
    audit_settings = settings.audit

    audit_logger = None
    if audit_settings.enabled:
        storage = audit_storage or create_audit_storage(
            audit_settings.log_path,
            write_attempts=audit_settings.write_attempts,
        )
        audit_logger = AuditLogger(storage)

    return DeferredCommitCoordinator(
        commit=commit,
        restore=restore,
        timeout_ms=coordinator_settings.timeout_ms,
        on_timeout=on_timeout,
        on_error=on_error,
        audit_logger=audit_logger,
    )
