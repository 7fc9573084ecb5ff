"""
Tests for Deferred Commit models

Test strategy:
1. Unit tests for individual components (models, storage, settings)
2. Coordinator tests with a fake repository
3. No real storage in tests (use in-memory fakes or tmp_path)
"""

import pytest
from datetime import timedelta
from uuid import uuid4

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


class TestPendingDeletion:
    """Tests for the pending slot model."""

    def test_pending_deletion_creation(self):
        """Test PendingDeletion model creation."""
        pending = PendingDeletion(item="coffee", token=1, timeout_ms=5000)
        assert pending.item == "coffee"
        assert pending.token == 1
        assert pending.correlation_id is not None

    def test_pending_deletion_keeps_item_identity(self):
        """Test that the stored item is the very object that was deleted."""
        item = {"merchant": "Swiggy", "amount": 450}
        pending = PendingDeletion(item=item, token=1, timeout_ms=5000)
        assert pending.item is item

    def test_deadline(self):
        """Test deadline is request time plus grace period."""
        pending = PendingDeletion(item="coffee", token=1, timeout_ms=5000)
        assert pending.deadline - pending.requested_at == timedelta(seconds=5)

    def test_matches_token(self):
        pending = PendingDeletion(item="coffee", token=3, timeout_ms=5000)
        assert pending.matches(3) is True
        assert pending.matches(2) is False

    def test_rejects_non_positive_token(self):
        """Test that tokens start at 1."""
        with pytest.raises(ValueError):
            PendingDeletion(item="coffee", token=0, timeout_ms=5000)

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            PendingDeletion(item="coffee", token=1, timeout_ms=0)

    def test_is_frozen(self):
        """Test that a pending deletion cannot be mutated."""
        pending = PendingDeletion(item="coffee", token=1, timeout_ms=5000)
        with pytest.raises(ValueError):
            pending.token = 2


class TestCoordinatorState:
    """Tests for coordinator state enum."""

    def test_state_values(self):
        assert CoordinatorState.IDLE.value == "idle"
        assert CoordinatorState.PENDING_UNDO.value == "pending_undo"
        assert CoordinatorState.PERMANENTLY_COMMITTED.value == "permanently_committed"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=UndoEventType.DELETE_REQUESTED,
            description="Item deleted",
        )
        assert event.event_type == UndoEventType.DELETE_REQUESTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=UndoEventType.DELETION_FINALIZED,
            token=4,
            description="Deletion is permanent",
            details={"timeout_ms": 5000},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "deletion_finalized"
        assert log_dict["token"] == 4
        assert log_dict["details"]["timeout_ms"] == 5000

    def test_audit_event_json_line_round_trip(self):
        """Test that a JSON line parses back into the same event."""
        correlation_id = uuid4()
        event = AuditEventBuilder.commit_failed(
            token=2,
            item="rent",
            error_message="database is locked",
            rolled_back=True,
            correlation_id=correlation_id,
        )
        parsed = AuditEvent.from_json_line(event.to_json_line())
        assert parsed.event_id == event.event_id
        assert parsed.event_type == UndoEventType.COMMIT_FAILED
        assert parsed.severity == AuditSeverity.ERROR
        assert parsed.correlation_id == correlation_id
        assert parsed.details == {"rolled_back": True}

    def test_audit_event_builder_delete_requested(self):
        """Test AuditEventBuilder.delete_requested."""
        correlation_id = uuid4()
        event = AuditEventBuilder.delete_requested(
            token=1,
            item="coffee",
            timeout_ms=5000,
            correlation_id=correlation_id,
        )
        assert event.event_type == UndoEventType.DELETE_REQUESTED
        assert event.item_repr == "'coffee'"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_undo_rejected(self):
        event = AuditEventBuilder.undo_rejected(reason="nothing pending")
        assert event.event_type == UndoEventType.UNDO_REJECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.token is None

    def test_describe_item_truncates(self):
        """Test that long item representations are shortened."""
        text = describe_item("x" * 1000)
        assert len(text) == 200
        assert text.endswith("...")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
