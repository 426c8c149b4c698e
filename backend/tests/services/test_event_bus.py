"""Event Bus — tests for signal relay semantics.

Tests cover:
    - Sync and async handlers receive emitted signals
    - A failing handler never reaches the publisher or other handlers
    - Unsubscribe function removes the handler
"""

import logging

from invoicing_core.core.domain_types import Signal


async def test_sync_handler_runs_inline(bus):
    calls = []
    bus.subscribe(Signal.LOGIN, lambda: calls.append("login"))

    bus.emit(Signal.LOGIN)

    assert calls == ["login"]


async def test_async_handler_is_scheduled_not_awaited(bus):
    calls = []

    async def handler():
        calls.append("done")

    bus.subscribe(Signal.USER_UPDATED, handler)
    bus.emit(Signal.USER_UPDATED)
    assert calls == []

    await bus.drain()
    assert calls == ["done"]


async def test_only_matching_signal_delivered(bus):
    calls = []
    bus.subscribe(Signal.INVOICES_UPDATED, lambda: calls.append("inv"))

    bus.emit(Signal.LOGIN)

    assert calls == []


async def test_failing_handler_isolated(bus, caplog):
    calls = []

    def broken():
        raise RuntimeError("boom")

    bus.subscribe(Signal.LOGIN, broken)
    bus.subscribe(Signal.LOGIN, lambda: calls.append("second"))

    with caplog.at_level(logging.ERROR):
        bus.emit(Signal.LOGIN)

    assert calls == ["second"]
    assert "Handler failed on login" in caplog.text


async def test_failing_async_handler_logged(bus, caplog):
    async def broken():
        raise RuntimeError("async boom")

    bus.subscribe(Signal.USER_UPDATED, broken)
    with caplog.at_level(logging.ERROR):
        bus.emit(Signal.USER_UPDATED)
        await bus.drain()

    assert "Async handler failed on user_updated" in caplog.text


async def test_unsubscribe_function(bus):
    calls = []
    unsubscribe = bus.subscribe(Signal.LOGIN, lambda: calls.append(1))
    assert bus.subscriber_count(Signal.LOGIN) == 1

    unsubscribe()
    bus.emit(Signal.LOGIN)

    assert calls == []
    assert bus.subscriber_count(Signal.LOGIN) == 0


async def test_emit_without_subscribers_is_noop(bus):
    bus.emit(Signal.INVOICES_UPDATED)
    await bus.drain()
