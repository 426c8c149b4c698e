"""Event Bus — in-process publish/subscribe relay for cross-component signals.

Invariants:
    - emit() is synchronous and never raises: publishers are never affected by subscribers
    - Coroutine handlers are scheduled as tasks, not awaited by emit()
    - A failing handler is logged; remaining handlers still run
    - Handlers are called in subscription order

Design Decisions:
    - Injected instance, not a module-global emitter: each Runtime and each test owns one
    - Handler registry keyed by Signal enum, shaped like a connection manager's
      per-room registry (dict of lists, copy on iteration)
    - Scheduled tasks kept in a set so they are not garbage-collected mid-flight
      and can be drained on shutdown
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

from invoicing_core.core.domain_types import Signal

logger = logging.getLogger(__name__)

Handler = Callable[[], Any]


class EventBus:
    """Signal → handlers registry with fire-and-forget delivery."""

    def __init__(self) -> None:
        self._handlers: dict[Signal, list[Handler]] = {}
        self._tasks: set[asyncio.Future] = set()

    def subscribe(self, signal: Signal, handler: Handler) -> Callable[[], None]:
        """Register handler. Returns a function that removes it again."""
        self._handlers.setdefault(signal, []).append(handler)
        return lambda: self.unsubscribe(signal, handler)

    def unsubscribe(self, signal: Signal, handler: Handler) -> None:
        handlers = self._handlers.get(signal)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[signal]

    def subscriber_count(self, signal: Signal) -> int:
        return len(self._handlers.get(signal, ()))

    def emit(self, signal: Signal) -> None:
        for handler in list(self._handlers.get(signal, ())):
            try:
                result = handler()
            except Exception as e:
                logger.error(
                    f"Handler failed on {signal.value}: {e}",
                    extra={"signal": signal.value}, exc_info=True,
                )
                continue
            if inspect.isawaitable(result):
                self._schedule(signal, result)

    async def drain(self) -> None:
        """Wait for every scheduled handler to finish (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, signal: Signal, awaitable) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Future) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    f"Async handler failed on {signal.value}: {exc}",
                    extra={"signal": signal.value}, exc_info=exc,
                )

        task.add_done_callback(_done)
