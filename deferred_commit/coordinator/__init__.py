"""Delete-with-undo coordination package."""

from deferred_commit.coordinator.deferred import (
    DEFAULT_TIMEOUT_MS,
    CommitFailedError,
    CoordinatorClosedError,
    DeferredCommitCoordinator,
    RestoreFailedError,
    UndoError,
)
from deferred_commit.coordinator.observable import ObservableValue

__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "CommitFailedError",
    "CoordinatorClosedError",
    "DeferredCommitCoordinator",
    "ObservableValue",
    "RestoreFailedError",
    "UndoError",
]
