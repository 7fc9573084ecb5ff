"""
Audit Storage

DESIGN DECISION: We define an abstract interface for audit persistence.
This allows us to:
1. Keep events in memory for tests and short-lived sessions
2. Append them to a local JSON-lines file on the device
3. Swap in a real database later without touching the coordinator

Audit storage is append-only. There is no update or delete.
"""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from deferred_commit.models.audit import AuditEvent


class AuditStorageError(Exception):
    """Base exception for audit storage operations."""
    pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Append-only - no updates or deletes allowed.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully

        Raises:
            AuditStorageError: If the event could not be written
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one delete request).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class InMemoryAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list. Lost when the process exits."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        with self._lock:
            return list(reversed(self._events))[:limit]

    @property
    def events(self) -> list[AuditEvent]:
        """Snapshot of every stored event, oldest first."""
        with self._lock:
            return list(self._events)


class JsonLinesAuditStorage(AuditStorageInterface):
    """
    Append-only JSON-lines file implementation of audit storage.

    One event per line. Writes are retried on OSError since the file
    may sit on storage that is briefly unavailable.
    """

    def __init__(self, path: Union[str, Path], write_attempts: int = 3):
        self._path = Path(path)
        self._write_attempts = write_attempts
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _write_line(self, line: str) -> None:
        with self._lock:
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def _read_events(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []

        events = []
        with self._lock:
            with self._path.open("r", encoding="utf-8") as fh:
                lines = fh.readlines()
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(AuditEvent.from_json_line(line))
            except ValueError:
                # Skip malformed lines
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event, retrying transient I/O errors."""
        line = event.to_json_line()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._write_attempts),
                wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                retry=retry_if_exception_type(OSError),
                reraise=True,
            ):
                with attempt:
                    self._write_line(line)
        except OSError as e:
            raise AuditStorageError(
                f"Failed to write audit event to {self._path}: {e}"
            ) from e
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._read_events()
            if e.correlation_id == correlation_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._read_events()))[:limit]


def create_audit_storage(
    log_path: Optional[str],
    write_attempts: int = 3,
) -> Optional[AuditStorageInterface]:
    """Build the file-backed storage when a path is configured."""
    if not log_path:
        return None
    return JsonLinesAuditStorage(log_path, write_attempts=write_attempts)
