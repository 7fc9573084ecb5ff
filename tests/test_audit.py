"""Tests for the audit logger and audit storage."""

import pytest
from uuid import uuid4

from deferred_commit.audit import (
    AuditLogger,
    AuditStorageError,
    AuditStorageInterface,
    InMemoryAuditStorage,
    JsonLinesAuditStorage,
    create_audit_storage,
    create_correlation_id,
)
from deferred_commit.models.audit import AuditEventBuilder, UndoEventType


class FailingStorage(AuditStorageInterface):
    """Storage whose writes always fail."""

    async def append_event(self, event):
        raise AuditStorageError("disk full")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestInMemoryAuditStorage:
    """Tests for the in-memory audit storage."""

    @pytest.mark.asyncio
    async def test_append_and_query(self):
        storage = InMemoryAuditStorage()
        correlation_id = create_correlation_id()

        await storage.append_event(AuditEventBuilder.commit_completed(1, correlation_id))
        await storage.append_event(AuditEventBuilder.commit_completed(2, uuid4()))

        related = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.token for e in related] == [1]

    @pytest.mark.asyncio
    async def test_recent_events_newest_first(self):
        storage = InMemoryAuditStorage()
        for token in (1, 2, 3):
            await storage.append_event(AuditEventBuilder.commit_completed(token, uuid4()))

        recent = await storage.get_recent_events(limit=2)
        assert [e.token for e in recent] == [3, 2]


class TestJsonLinesAuditStorage:
    """Tests for the JSON-lines audit storage."""

    @pytest.mark.asyncio
    async def test_append_writes_one_line_per_event(self, tmp_path):
        path = tmp_path / "audit.jsonl"
        storage = JsonLinesAuditStorage(path)
        correlation_id = create_correlation_id()

        assert await storage.append_event(
            AuditEventBuilder.deletion_finalized(1, correlation_id)
        ) is True
        await storage.append_event(AuditEventBuilder.deletion_dismissed(2, uuid4()))

        assert len(path.read_text(encoding="utf-8").splitlines()) == 2
        related = await storage.get_events_by_correlation_id(correlation_id)
        assert len(related) == 1
        assert related[0].event_type == UndoEventType.DELETION_FINALIZED

    @pytest.mark.asyncio
    async def test_missing_file_reads_empty(self, tmp_path):
        storage = JsonLinesAuditStorage(tmp_path / "absent.jsonl")
        assert await storage.get_recent_events() == []

    @pytest.mark.asyncio
    async def test_malformed_lines_are_skipped(self, tmp_path):
        """Test that a corrupt line does not hide the rest of the log."""
        path = tmp_path / "audit.jsonl"
        storage = JsonLinesAuditStorage(path)
        await storage.append_event(AuditEventBuilder.commit_completed(1, uuid4()))
        with path.open("a", encoding="utf-8") as fh:
            fh.write("{not json\n")
        await storage.append_event(AuditEventBuilder.commit_completed(2, uuid4()))

        recent = await storage.get_recent_events()
        assert [e.token for e in recent] == [2, 1]

    @pytest.mark.asyncio
    async def test_transient_write_error_is_retried(self, tmp_path, monkeypatch):
        """Test that a write failing once succeeds on retry."""
        storage = JsonLinesAuditStorage(tmp_path / "audit.jsonl", write_attempts=3)
        original = storage._write_line
        calls = []

        def flaky(line):
            calls.append(line)
            if len(calls) == 1:
                raise OSError("resource temporarily unavailable")
            original(line)

        monkeypatch.setattr(storage, "_write_line", flaky)

        assert await storage.append_event(
            AuditEventBuilder.commit_completed(1, uuid4())
        ) is True
        assert len(calls) == 2
        assert len(await storage.get_recent_events()) == 1

    @pytest.mark.asyncio
    async def test_persistent_write_error_raises(self, tmp_path):
        """Test that giving up raises AuditStorageError."""
        storage = JsonLinesAuditStorage(
            tmp_path / "missing-dir" / "audit.jsonl",
            write_attempts=2,
        )
        with pytest.raises(AuditStorageError):
            await storage.append_event(AuditEventBuilder.commit_completed(1, uuid4()))


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_log_without_storage(self):
        """Test that local-only logging succeeds."""
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.undo_rejected("nothing pending")) is True

    @pytest.mark.asyncio
    async def test_log_persists_to_storage(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await logger.log_undo_requested(token=1, item="coffee", correlation_id=correlation_id)

        assert len(storage.events) == 1
        assert storage.events[0].event_type == UndoEventType.UNDO_REQUESTED

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        """Test that a failing storage is reported, not raised."""
        logger = AuditLogger(FailingStorage())
        assert await logger.log(AuditEventBuilder.undo_rejected("nothing pending")) is False


class TestCreateAuditStorage:
    """Tests for create_audit_storage."""

    def test_no_path_means_no_storage(self):
        assert create_audit_storage(None) is None
        assert create_audit_storage("") is None

    def test_path_gives_json_lines_storage(self, tmp_path):
        storage = create_audit_storage(str(tmp_path / "audit.jsonl"), write_attempts=5)
        assert isinstance(storage, JsonLinesAuditStorage)
        assert storage.path == tmp_path / "audit.jsonl"
