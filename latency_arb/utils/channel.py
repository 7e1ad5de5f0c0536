"""
Typed publish/subscribe channel for in-process events, plus a per-key dispatcher.

Each event kind (spot, quote, opportunity) gets its own channel. Publishing
awaits every subscriber in registration order, so a handler finishes before
the next event on the same channel is dispatched.
"""

import asyncio
from typing import Any, Callable, Generic, TypeVar

from .logger import get_logger

logger = get_logger("channel")

T = TypeVar("T")


class Channel(Generic[T]):
    """Ordered fan-out of events of one kind to sync or async handlers."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: list[Callable[[T], Any]] = []

    def subscribe(self, handler: Callable[[T], Any]) -> None:
        """Register a handler; handlers run in the order they subscribed."""
        self._handlers.append(handler)

    def unsubscribe(self, handler: Callable[[T], Any]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, event: T) -> None:
        """
        Deliver an event to every subscriber.

        A subscriber that raises is logged and skipped; the rest still run.
        """
        for handler in list(self._handlers):
            try:
                await self._call_handler(handler, event)
            except Exception:
                logger.exception(
                    "Subscriber failed",
                    extra={"channel": self.name, "handler": getattr(handler, "__qualname__", repr(handler))}
                )

    async def _call_handler(self, handler: Callable, *args) -> None:
        """Call handler, supporting both sync and async callbacks."""
        result = handler(*args)
        if asyncio.iscoroutine(result):
            await result


class KeyedDispatcher(Generic[T]):
    """
    Per-key serial dispatch of events to one handler.

    Each key gets its own queue and worker task, so events sharing a key are
    handled strictly in arrival order while different keys run concurrently.
    A worker that stays idle for ``idle_timeout`` seconds exits and is
    recreated on the next event for its key.
    """

    def __init__(
        self,
        name: str,
        handler: Callable[[T], Any],
        key: Callable[[T], str],
        idle_timeout: float = 60.0
    ):
        self.name = name
        self.handler = handler
        self.key = key
        self.idle_timeout = idle_timeout

        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}

    @property
    def active_keys(self) -> list[str]:
        return list(self._workers)

    def dispatch(self, event: T) -> None:
        """Queue an event on its key's worker; must be called from the event loop."""
        key = self.key(event)
        queue = self._queues.get(key)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[key] = queue
            self._workers[key] = asyncio.create_task(self._run_worker(key, queue))
        queue.put_nowait(event)

    async def _run_worker(self, key: str, queue: asyncio.Queue) -> None:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), self.idle_timeout)
            except asyncio.TimeoutError:
                if queue.empty():
                    self._queues.pop(key, None)
                    self._workers.pop(key, None)
                    return
                continue

            try:
                await self._call_handler(self.handler, event)
            except Exception:
                logger.exception(
                    "Dispatch handler failed",
                    extra={"channel": self.name, "key": key}
                )
            finally:
                queue.task_done()

    async def _call_handler(self, handler: Callable, *args) -> None:
        result = handler(*args)
        if asyncio.iscoroutine(result):
            await result

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await asyncio.gather(*(queue.join() for queue in list(self._queues.values())))

    async def close(self) -> None:
        """Cancel all workers, dropping anything still queued."""
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._queues.clear()
        self._workers.clear()
