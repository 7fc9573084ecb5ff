"""Audit logging package."""

from deferred_commit.audit.logger import AuditLogger, create_correlation_id
from deferred_commit.audit.storage import (
    AuditStorageError,
    AuditStorageInterface,
    InMemoryAuditStorage,
    JsonLinesAuditStorage,
    create_audit_storage,
)

__all__ = [
    "AuditLogger",
    "AuditStorageError",
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "JsonLinesAuditStorage",
    "create_audit_storage",
    "create_correlation_id",
]
