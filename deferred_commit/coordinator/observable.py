"""
Observable current-value cell.

Holds the latest value and tells subscribers when it changes. Readers
that fall behind only ever see the newest value; intermediate values
are not buffered.
"""

import asyncio
import threading
from typing import AsyncIterator, Callable, Generic, TypeVar

import structlog


T = TypeVar("T")

logger = structlog.get_logger(__name__)


class ObservableValue(Generic[T]):
    """
    Single-writer observable value.

    Setting a value equal to the current one does not notify.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """
        Replace the current value.

        Returns True if subscribers were notified.
        """
        with self._lock:
            if value is self._value or value == self._value:
                return False
            self._value = value
            subscribers = list(self._subscribers)

        for callback in subscribers:
            self._notify(callback, value)
        return True

    @staticmethod
    def _notify(callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception as e:
            # A broken observer must not break the writer
            logger.error(
                "observer_failed",
                error=str(e),
                observer=getattr(callback, "__qualname__", repr(callback)),
            )

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register callback for changes.

        The callback is invoked right away with the current value.
        Returns a function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)
            current = self._value
        self._notify(callback, current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    async def watch(self) -> AsyncIterator[T]:
        """
        Iterate over the current value and every later change.

        Changes that happen while the consumer is busy are conflated
        into the latest value.
        """
        loop = asyncio.get_running_loop()
        changed = asyncio.Event()

        def wake(_value: T) -> None:
            loop.call_soon_threadsafe(changed.set)

        unsubscribe = self.subscribe(wake)
        try:
            while True:
                await changed.wait()
                changed.clear()
                yield self._value
        finally:
            unsubscribe()
