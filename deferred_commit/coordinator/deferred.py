"""
Deferred Commit Coordinator

Lets a user delete an item, offers an undo for a bounded grace period,
and makes the deletion permanent only if that period elapses untouched.

Flow:
1. request_delete → item published as pending, commit launched, timer started
2a. request_undo  → slot cleared, restore launched after the commit lands
2b. dismiss       → slot cleared, commit kept
2c. timer expires → slot cleared, deletion is permanent
2d. commit fails  → slot cleared, failure surfaced

DESIGN DECISION: The sequence token is the only thing that decides
whether a timer firing or a completion still refers to the current
pending item. Every slot transition happens under one lock, so two
competing completions can never both win.
"""

import asyncio
import concurrent.futures
import itertools
import threading
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

import structlog

from deferred_commit.audit import AuditLogger, create_correlation_id
from deferred_commit.coordinator.observable import ObservableValue
from deferred_commit.models.audit import describe_item
from deferred_commit.models.deletion import CoordinatorState, PendingDeletion


T = TypeVar("T")

DEFAULT_TIMEOUT_MS = 5000

TaskHandle = Union["asyncio.Future[Any]", "concurrent.futures.Future[Any]"]


class UndoError(Exception):
    """Base exception for delete/undo errors."""
    pass


class CommitFailedError(UndoError):
    """The commit operation failed for a deleted item."""

    def __init__(self, item: Any, token: int, rolled_back: bool, message: str):
        self.item = item
        self.token = token
        self.rolled_back = rolled_back
        super().__init__(message)


class RestoreFailedError(UndoError):
    """The restore operation failed during undo."""

    def __init__(self, item: Any, token: int, message: str):
        self.item = item
        self.token = token
        super().__init__(message)


class CoordinatorClosedError(UndoError):
    """A command was issued after the coordinator was closed."""
    pass


class DeferredCommitCoordinator(Generic[T]):
    """
    Optimistic delete with undo, at most one pending item at a time.

    Usage:
        coordinator = DeferredCommitCoordinator(
            commit=repository.delete,
            restore=repository.insert,
        )
        coordinator.deleted_item.subscribe(show_or_hide_undo_prompt)

        coordinator.request_delete(transaction)
        ...
        coordinator.request_undo()

    Commands are meant to be called from the event loop thread. They may
    also be called from another thread once the coordinator knows its
    loop (pass loop= or issue the first command on the loop thread).
    """

    def __init__(
        self,
        commit: Callable[[T], Awaitable[Any]],
        restore: Callable[[T], Awaitable[Any]],
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        on_timeout: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[UndoError], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            commit: Applies the delete to storage. Raising means the delete
                    did not happen.
            restore: Puts a deleted item back. Best effort, never retried.
            timeout_ms: Undo grace period, must be positive.
            on_timeout: Called after a deletion became permanent.
            on_error: Receives CommitFailedError / RestoreFailedError.
            loop: Loop that runs timers and completions. Defaults to the
                  loop running when the first command is issued.
            audit_logger: Records every transition. None disables auditing.
        """
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")

        self._commit = commit
        self._restore = restore
        self._timeout_ms = timeout_ms
        self._on_timeout = on_timeout
        self._on_error = on_error
        self._loop = loop
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger(__name__)

        self._deleted_item: ObservableValue[Optional[T]] = ObservableValue(None)
        self._lock = threading.RLock()
        self._tokens = itertools.count(1)
        self._pending: Optional[PendingDeletion] = None
        self._state = CoordinatorState.IDLE
        self._timer: Optional[TaskHandle] = None
        self._commit_task: Optional[TaskHandle] = None
        self._tasks: set = set()
        self._closed = False

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def deleted_item(self) -> ObservableValue[Optional[T]]:
        """The item that can currently be undone, or None."""
        return self._deleted_item

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def pending(self) -> Optional[PendingDeletion]:
        return self._pending

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @property
    def closed(self) -> bool:
        return self._closed

    def has_pending_undo(self) -> bool:
        """Check if there's a pending deletion that can be undone."""
        with self._lock:
            return self._pending is not None and self._state is CoordinatorState.PENDING_UNDO

    # =========================================================================
    # Commands
    # =========================================================================

    def request_delete(self, item: T) -> TaskHandle:
        """
        Mark item as deleted and offer undo for timeout_ms.

        Any earlier pending deletion is abandoned without restore.

        Returns:
            Handle of the commit operation. Awaiting it raises
            CommitFailedError if the commit failed.
        """
        self._resolve_loop()

        with self._lock:
            self._ensure_open()
            self._cancel_timer()

            previous = self._pending
            pending = PendingDeletion(
                item=item,
                token=next(self._tokens),
                correlation_id=create_correlation_id(),
                timeout_ms=self._timeout_ms,
            )
            self._pending = pending
            self._state = CoordinatorState.PENDING_UNDO

            if previous is not None:
                self._logger.info(
                    "deletion_superseded",
                    token=previous.token,
                    superseded_by=pending.token,
                )
                self._record(lambda audit: audit.log_delete_superseded(
                    token=previous.token,
                    superseded_by=pending.token,
                    correlation_id=previous.correlation_id,
                ))

            self._logger.info(
                "deletion_requested",
                token=pending.token,
                correlation_id=str(pending.correlation_id),
                timeout_ms=self._timeout_ms,
            )
            self._record(lambda audit: audit.log_delete_requested(
                token=pending.token,
                item=item,
                timeout_ms=self._timeout_ms,
                correlation_id=pending.correlation_id,
            ))

            self._timer = self._spawn(self._expire_after(pending), track=False)
            commit_task = self._spawn(self._run_commit(pending))
            self._commit_task = commit_task
            self._deleted_item.set(item)

        return commit_task

    def request_undo(self) -> bool:
        """
        Undo the last deletion if still within timeout.

        The restore is launched, not awaited: True means the undo was
        accepted, not that the item is back in storage yet. The restore
        waits for the same request's commit, and is skipped when that
        commit failed since the delete never happened.

        Returns:
            True if undo was accepted, False if too late or nothing to undo
        """
        with self._lock:
            self._ensure_open()
            self._cancel_timer()

            pending = self._pending
            if pending is None or self._state is not CoordinatorState.PENDING_UNDO:
                self._logger.info("undo_rejected", reason="nothing pending")
                self._record(lambda audit: audit.log_undo_rejected(reason="nothing pending"))
                return False

            commit_task = self._commit_task
            self._clear_slot()

            self._logger.info(
                "undo_requested",
                token=pending.token,
                correlation_id=str(pending.correlation_id),
            )
            self._record(lambda audit: audit.log_undo_requested(
                token=pending.token,
                item=pending.item,
                correlation_id=pending.correlation_id,
            ))
            self._spawn(self._run_restore(pending, commit_task))

        return True

    def dismiss(self) -> None:
        """
        Clear the deleted item without restoring.

        Call this when the user dismisses the undo prompt. Does nothing
        if no deletion is pending.
        """
        with self._lock:
            self._cancel_timer()

            pending = self._pending
            if pending is None:
                return

            self._clear_slot()

            self._logger.info(
                "deletion_dismissed",
                token=pending.token,
                correlation_id=str(pending.correlation_id),
            )
            self._record(lambda audit: audit.log_deletion_dismissed(
                token=pending.token,
                correlation_id=pending.correlation_id,
            ))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def drain(self) -> None:
        """
        Wait for every outstanding commit, restore and audit write.

        A timer still counting down is not waited for. Failures are not raised here;
        they reach the host through the commit handle or on_error.
        """
        while True:
            with self._lock:
                outstanding = [
                    asyncio.wrap_future(task)
                    if isinstance(task, concurrent.futures.Future) else task
                    for task in self._tasks
                    if not task.done()
                ]
            if not outstanding:
                return
            await asyncio.gather(*outstanding, return_exceptions=True)

    async def aclose(self) -> None:
        """
        End the session.

        Cancels the timer, drops any pending deletion without restore and
        waits for outstanding work. Safe to call more than once.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_timer()

            pending = self._pending
            if pending is not None:
                self._clear_slot()

        abandoned = pending.token if pending is not None else None
        self._logger.info("coordinator_closed", abandoned_token=abandoned)
        if self._audit_logger:
            await self._audit_logger.log_coordinator_closed(abandoned_token=abandoned)

        await self.drain()

    # =========================================================================
    # Timer and completions
    # =========================================================================

    async def _expire_after(self, pending: PendingDeletion) -> None:
        """Finalize the deletion once its grace period has elapsed."""
        await asyncio.sleep(pending.timeout_ms / 1000)

        # Past the sleep, finalization is outstanding work drain() waits for
        self._track(asyncio.current_task())

        with self._lock:
            if not self._is_current(pending):
                self._logger.debug(
                    "stale_operation_ignored",
                    operation="timeout",
                    token=pending.token,
                )
                return

            self._timer = None
            self._state = CoordinatorState.PERMANENTLY_COMMITTED
            self._pending = None
            self._commit_task = None
            self._deleted_item.set(None)
            self._state = CoordinatorState.IDLE

        self._logger.info(
            "deletion_finalized",
            token=pending.token,
            correlation_id=str(pending.correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_deletion_finalized(
                token=pending.token,
                correlation_id=pending.correlation_id,
            )

        if self._on_timeout is not None:
            try:
                self._on_timeout()
            except Exception as e:
                # The deletion is already permanent; a broken callback can't change that
                self._logger.error(
                    "timeout_callback_failed",
                    token=pending.token,
                    correlation_id=str(pending.correlation_id),
                    error=str(e),
                )

    async def _run_commit(self, pending: PendingDeletion) -> None:
        try:
            await self._commit(pending.item)
        except Exception as e:
            rolled_back = self._roll_back(pending)
            self._logger.error(
                "commit_failed",
                token=pending.token,
                correlation_id=str(pending.correlation_id),
                rolled_back=rolled_back,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_commit_failed(
                    token=pending.token,
                    item=pending.item,
                    error_message=str(e),
                    rolled_back=rolled_back,
                    correlation_id=pending.correlation_id,
                )
            raise CommitFailedError(
                item=pending.item,
                token=pending.token,
                rolled_back=rolled_back,
                message=f"Could not delete {describe_item(pending.item)}: {e}",
            ) from e

        if self._audit_logger:
            await self._audit_logger.log_commit_completed(
                token=pending.token,
                correlation_id=pending.correlation_id,
            )

    async def _run_restore(
        self,
        pending: PendingDeletion,
        commit_task: Optional[TaskHandle],
    ) -> None:
        # Restoring before the delete lands would let the delete win
        if commit_task is not None and not await self._commit_took_effect(commit_task):
            self._logger.info(
                "restore_skipped",
                token=pending.token,
                correlation_id=str(pending.correlation_id),
            )
            if self._audit_logger:
                await self._audit_logger.log_restore_skipped(
                    token=pending.token,
                    correlation_id=pending.correlation_id,
                )
            return

        try:
            await self._restore(pending.item)
        except Exception as e:
            self._logger.error(
                "restore_failed",
                token=pending.token,
                correlation_id=str(pending.correlation_id),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_restore_failed(
                    token=pending.token,
                    item=pending.item,
                    error_message=str(e),
                    correlation_id=pending.correlation_id,
                )
            raise RestoreFailedError(
                item=pending.item,
                token=pending.token,
                message=f"Could not restore {describe_item(pending.item)}: {e}",
            ) from e

        if self._audit_logger:
            await self._audit_logger.log_restore_completed(
                token=pending.token,
                correlation_id=pending.correlation_id,
            )

    async def _commit_took_effect(self, commit_task: TaskHandle) -> bool:
        """Wait for a commit without propagating its failure or cancelling it."""
        if isinstance(commit_task, concurrent.futures.Future):
            commit_task = asyncio.wrap_future(commit_task)
        await asyncio.wait({commit_task})
        return not commit_task.cancelled() and commit_task.exception() is None

    def _roll_back(self, pending: PendingDeletion) -> bool:
        """Undo the optimistic pending state after a failed commit."""
        with self._lock:
            if not self._is_current(pending):
                self._logger.debug(
                    "stale_operation_ignored",
                    operation="commit_rollback",
                    token=pending.token,
                )
                return False
            self._cancel_timer()
            self._clear_slot()
            return True

    # =========================================================================
    # Internals - callers hold self._lock
    # =========================================================================

    def _is_current(self, pending: PendingDeletion) -> bool:
        return self._pending is not None and self._pending.matches(pending.token)

    def _clear_slot(self) -> None:
        self._pending = None
        self._commit_task = None
        self._state = CoordinatorState.IDLE
        self._deleted_item.set(None)

    def _ensure_open(self) -> None:
        if self._closed:
            raise CoordinatorClosedError("Coordinator is closed")

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        if isinstance(timer, asyncio.Future) and not self._on_loop_thread():
            # asyncio tasks may only be cancelled from their own loop;
            # a firing that slips through is caught by the token check.
            self._loop.call_soon_threadsafe(timer.cancel)
        else:
            timer.cancel()

    def _record(self, write: Callable[[AuditLogger], Awaitable[None]]) -> None:
        """Write an audit event in the background."""
        if self._audit_logger is None:
            return
        self._spawn(write(self._audit_logger))

    def _spawn(self, coro: Awaitable[Any], track: bool = True) -> TaskHandle:
        loop = self._resolve_loop()
        if self._on_loop_thread():
            task = loop.create_task(coro)
        else:
            task = asyncio.run_coroutine_threadsafe(coro, loop)

        if track:
            self._track(task)
        return task

    def _track(self, task: TaskHandle) -> None:
        with self._lock:
            self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: TaskHandle) -> None:
        with self._lock:
            self._tasks.discard(task)
        if self._on_error is None or task.cancelled():
            return
        error = task.exception()
        if isinstance(error, UndoError):
            self._on_error(error)

    def _resolve_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError as e:
                raise RuntimeError(
                    "DeferredCommitCoordinator needs a running event loop; "
                    "pass loop= when commands come from another thread"
                ) from e
        return self._loop

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False
