"""Live snapshot streams and cancellable watch handles."""
import asyncio
from collections.abc import AsyncIterator, Coroutine
from typing import Any, Generic, TypeVar

from loguru import logger

T = TypeVar('T')


class WatchHandle:
    """
    Cancellation handle for a long-running watch started by the queue.

    Each watcher, timer and subscription owns its own handle, so they can be
    stopped individually.
    """

    def __init__(self, task: asyncio.Task, name: str) -> None:
        self._task = task
        self.name = name

    @classmethod
    def spawn(cls, coro: Coroutine[Any, Any, None], name: str) -> "WatchHandle":
        """Schedule a coroutine on the running loop and wrap it in a handle."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        task.add_done_callback(_log_task_failure)
        return cls(task, name)

    def cancel(self) -> None:
        if not self._task.done():
            logger.debug(f"Cancelling {self.name}")
            self._task.cancel()

    @property
    def active(self) -> bool:
        return not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    async def wait(self) -> None:
        """Wait for the watch to finish, treating cancellation as completion."""
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    def __repr__(self) -> str:
        state = 'active' if self.active else 'stopped'
        return f'<WatchHandle {self.name} {state}>'


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Watch {task.get_name()} stopped with {type(exc).__name__}: {exc}")


class LiveValue(Generic[T]):
    """
    Holds the latest full-state snapshot and fans it out to subscribers.

    A subscriber first receives the current snapshot (if one was published)
    and then every newer one. Snapshots are full states, not deltas, so a
    slow subscriber only ever sees the latest value and never a stale one.
    """

    def __init__(self, *initial: T) -> None:
        if len(initial) > 1:
            raise TypeError("LiveValue takes at most one initial value")
        self._value: T | None = initial[0] if initial else None
        self._version = 1 if initial else 0
        self._closed = False
        self._waiters: set[asyncio.Event] = set()

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, value: T) -> None:
        if self._closed:
            raise RuntimeError("Cannot publish to a closed LiveValue")
        self._value = value
        self._version += 1
        self._wake()

    def close(self) -> None:
        """End every subscription once it has seen the latest snapshot."""
        self._closed = True
        self._wake()

    async def subscribe(self) -> AsyncIterator[T]:
        event = asyncio.Event()
        self._waiters.add(event)
        last_seen = 0
        try:
            while True:
                if self._version != last_seen:
                    last_seen = self._version
                    yield self._value  # type: ignore[misc]
                    continue
                if self._closed:
                    return
                event.clear()
                await event.wait()
        finally:
            self._waiters.discard(event)

    def _wake(self) -> None:
        for event in list(self._waiters):
            event.set()
