"""Service test fixtures — in-memory collaborators and wired services.

Invariants:
    - Every test gets fresh fakes and a fresh EventBus
    - The guard's idle timer never sleeps for real: `sleeps` records requested
      delays and the timer task hangs until stop() cancels it
    - Every guard/clock fixture is stopped/drained at teardown

Design Decisions:
    - Tests drive check_expiry() directly with a FakeClock instead of waiting on timers
"""

import asyncio

import pytest

from invoicing_core.core.domain_types import SESSION_SCOPED_KEYS
from invoicing_core.services.activity_clock import ActivityClock
from invoicing_core.services.event_bus import EventBus
from invoicing_core.services.notification_mailbox import NotificationMailbox
from invoicing_core.services.session_guard import SessionGuard

from tests.services.fakes import (
    FakeActivityRepository, FakeAuthProvider, FakeClock, FakeKeyValueStore,
    FakeNotificationRepository, make_session,
)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def auth(session):
    return FakeAuthProvider(session)


@pytest.fixture
def signed_out_auth():
    return FakeAuthProvider(None)


@pytest.fixture
def kv(auth):
    store = FakeKeyValueStore(auth)
    for key in SESSION_SCOPED_KEYS:
        store.data.setdefault(auth.session.user_id, {})[key] = "seeded"
    return store


@pytest.fixture
def activity_repo():
    return FakeActivityRepository()


@pytest.fixture
def notification_repo():
    return FakeNotificationRepository()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
async def activity_clock(activity_repo, fake_clock):
    clock = ActivityClock(activity_repo, clock=fake_clock)
    yield clock
    await clock.drain()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def notices():
    return []


@pytest.fixture
def hanging_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await asyncio.Event().wait()
    return _sleep


@pytest.fixture
async def guard(auth, activity_clock, activity_repo, kv, bus, notices, hanging_sleep):
    g = SessionGuard(
        auth, activity_clock, activity_repo, kv, bus,
        notify=lambda message, severity: notices.append((message, severity)),
        sleep=hanging_sleep,
    )
    yield g
    await g.stop()


@pytest.fixture
async def mailbox(auth, notification_repo, bus, fake_clock):
    box = NotificationMailbox(auth, notification_repo, bus, clock=fake_clock)
    yield box
    box.stop()
    await bus.drain()
