"""
Core Data Models for Deferred Commit

These models describe the single in-flight deletion a coordinator
can hold, and the finite set of states the coordinator moves through.

DESIGN DECISION: Staleness is decided by the sequence token, never by
comparing items. Two delete requests for equal-valued items are still
two different requests.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CoordinatorState(str, Enum):
    """
    Coordinator lifecycle states.

    PERMANENTLY_COMMITTED is transient: it is only held while a timeout
    finalizes a deletion, and is immediately followed by IDLE.
    """
    IDLE = "idle"
    PENDING_UNDO = "pending_undo"
    PERMANENTLY_COMMITTED = "permanently_committed"


class PendingDeletion(BaseModel, Generic[T]):
    """
    The pending slot: the one item currently eligible for undo.

    Created by a delete request. Destroyed by undo, timeout, dismissal,
    supersession, or a failed commit.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    item: T = Field(
        ...,
        description="The deleted value, kept so it can be restored"
    )
    token: int = Field(
        ...,
        ge=1,
        description="Sequence token, unique per delete request"
    )
    correlation_id: UUID = Field(
        default_factory=uuid4,
        description="Ties together every audit event of this request"
    )
    requested_at: datetime = Field(
        default_factory=_utcnow,
        description="When the delete was requested (UTC)"
    )
    timeout_ms: int = Field(
        ...,
        gt=0,
        description="Grace period this request was started with"
    )

    @property
    def deadline(self) -> datetime:
        """When the deletion becomes permanent if nobody intervenes."""
        return self.requested_at + timedelta(milliseconds=self.timeout_ms)

    def matches(self, token: int) -> bool:
        """Check whether an event tagged with token still refers to this request."""
        return self.token == token
