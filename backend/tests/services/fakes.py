"""In-memory Fakes — protocol implementations for service tests.

Invariants:
    - Every fake satisfies its Protocol structurally (no inheritance)
    - Failures are switched on per operation via `fail_on` and raise the same
      typed errors the SQL/HTTP adapters raise
    - `gate` events let a test hold a remote call open to interleave operations

Design Decisions:
    - Flat classes, explicit call logs: simple to assert against, easy to debug
    - FakeCounter serialises with an asyncio.Lock and yields inside it, standing in
      for the database row lock of the real upsert
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from invoicing_core.core.domain_types import (
    AuthSession, AuthUser, InvoiceSummary, Notification, NotificationId, UserId,
)
from invoicing_core.core.errors import (
    AuthProviderError, DatabaseError, ResourceNotFoundError,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current


def make_session(user_id: str = "user-1", email: str = "ana@example.com",
                 role: str | None = None) -> AuthSession:
    return AuthSession(
        user=AuthUser(id=UserId(user_id), email=email, role=role),
        access_token=f"token-{user_id}",
        authenticated_at=T0,
    )


class _Failing:
    """Mixin: raise on operations listed in fail_on, optionally wait on gates."""

    error_factory: Callable[[str], Exception] = staticmethod(
        lambda op: DatabaseError("injected", op),
    )

    def __init__(self) -> None:
        self.fail_on: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}

    async def _enter(self, op: str) -> None:
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        if op in self.fail_on:
            raise self.error_factory(op)


class FakeAuthProvider(_Failing):
    error_factory = staticmethod(lambda op: AuthProviderError("injected", "connection_error"))

    def __init__(self, session: AuthSession | None = None):
        super().__init__()
        self.session = session
        self.sign_out_calls = 0
        self.listeners: list = []

    async def get_session(self) -> AuthSession | None:
        await self._enter("get_session")
        return self.session

    async def get_user(self) -> AuthUser | None:
        await self._enter("get_user")
        return self.session.user if self.session else None

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        await self._enter("sign_out")
        had_session = self.session is not None
        self.session = None
        if had_session:
            self.fire("SIGNED_OUT", None)

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)

        def unsubscribe():
            if callback in self.listeners:
                self.listeners.remove(callback)

        return unsubscribe

    # test helpers
    def fire(self, event: str, session: AuthSession | None) -> None:
        for cb in list(self.listeners):
            cb(event, session)

    def sign_in(self, session: AuthSession) -> None:
        self.session = session
        self.fire("SIGNED_IN", session)

    def end_externally(self) -> None:
        self.session = None
        self.fire("SIGNED_OUT", None)


class FakeKeyValueStore:
    """User-scoped dict; writes only land while the provider reports a user."""

    def __init__(self, auth: FakeAuthProvider):
        self.auth = auth
        self.data: dict[str, dict[str, Any]] = {}
        self.removed: list[str] = []

    def _bucket(self) -> dict[str, Any] | None:
        if self.auth.session is None:
            return None
        return self.data.setdefault(self.auth.session.user_id, {})

    async def get(self, key: str, default: Any = None) -> Any:
        bucket = self._bucket()
        return default if bucket is None else bucket.get(key, default)

    async def set(self, key: str, value: Any) -> bool:
        bucket = self._bucket()
        if bucket is None:
            return False
        bucket[key] = value
        return True

    async def remove(self, key: str) -> bool:
        bucket = self._bucket()
        if bucket is None:
            return False
        bucket.pop(key, None)
        self.removed.append(key)
        return True

    async def clear_all(self) -> bool:
        bucket = self._bucket()
        if bucket is None:
            return False
        bucket.clear()
        return True


class FakeActivityRepository(_Failing):
    def __init__(self):
        super().__init__()
        self.rows: dict[UserId, datetime] = {}
        self.upserts: list[tuple[UserId, datetime]] = []

    async def get_last_activity(self, user_id: UserId) -> datetime | None:
        await self._enter("get_last_activity")
        return self.rows.get(user_id)

    async def upsert_last_activity(self, user_id: UserId, at: datetime) -> None:
        await self._enter("upsert_last_activity")
        self.rows[user_id] = at
        self.upserts.append((user_id, at))


class FakeNotificationRepository(_Failing):
    def __init__(self):
        super().__init__()
        self.rows: dict[UserId, dict[NotificationId, Notification]] = {}

    def seed(self, *notifications: Notification) -> None:
        for n in notifications:
            self.rows.setdefault(n.user_id, {})[n.id] = n

    async def list_for_user(self, user_id: UserId) -> list[Notification]:
        await self._enter("list_for_user")
        rows = list(self.rows.get(user_id, {}).values())
        return sorted(rows, key=lambda n: n.timestamp, reverse=True)

    async def insert(self, notification: Notification) -> None:
        await self._enter("insert")
        bucket = self.rows.setdefault(notification.user_id, {})
        if notification.id in bucket:
            raise DatabaseError("duplicate id", "commit")
        bucket[notification.id] = notification

    async def mark_read(self, user_id: UserId, notification_id: NotificationId) -> None:
        await self._enter("mark_read")
        bucket = self.rows.get(user_id, {})
        if notification_id in bucket:
            bucket[notification_id] = bucket[notification_id].as_read()

    async def mark_all_read(self, user_id: UserId) -> None:
        await self._enter("mark_all_read")
        bucket = self.rows.get(user_id, {})
        for key, n in list(bucket.items()):
            bucket[key] = n.as_read()

    async def delete(self, user_id: UserId, notification_id: NotificationId) -> None:
        await self._enter("delete")
        self.rows.get(user_id, {}).pop(notification_id, None)

    async def delete_all(self, user_id: UserId) -> None:
        await self._enter("delete_all")
        self.rows.pop(user_id, None)


class FakeCounter(_Failing):
    """Atomic increment-and-return per (prefix, date_key)."""

    def __init__(self):
        super().__init__()
        self.values: dict[tuple[str, str], int] = {}
        self.calls: list[tuple[str, str]] = []
        self._lock = asyncio.Lock()

    async def next_serial(self, prefix: str, date_key: str) -> int:
        await self._enter("next_serial")
        async with self._lock:
            self.calls.append((prefix, date_key))
            current = self.values.get((prefix, date_key), 0)
            # Give every other caller a chance to run mid-increment
            await asyncio.sleep(0)
            self.values[(prefix, date_key)] = current + 1
            return current + 1


class FakeInvoiceRepository(_Failing):
    def __init__(self):
        super().__init__()
        self.rows: dict[str, InvoiceSummary] = {}

    def seed(self, *invoices: InvoiceSummary) -> None:
        for inv in invoices:
            self.rows[inv.id] = inv

    async def list_saved(self, user_id: UserId) -> list[InvoiceSummary]:
        await self._enter("list_saved")
        rows = [
            inv for inv in self.rows.values()
            if inv.created_by == user_id and inv.deleted_at is None
        ]
        return sorted(rows, key=lambda inv: inv.created_at, reverse=True)

    async def list_deleted(
        self, user_id: UserId, deleted_since: datetime,
    ) -> list[InvoiceSummary]:
        await self._enter("list_deleted")
        rows = [
            inv for inv in self.rows.values()
            if inv.deleted_by == user_id
            and inv.deleted_at is not None
            and inv.deleted_at >= deleted_since
        ]
        return sorted(rows, key=lambda inv: inv.deleted_at, reverse=True)

    async def get(self, invoice_id: str) -> InvoiceSummary | None:
        await self._enter("get")
        return self.rows.get(invoice_id)

    async def update_recipient(
        self, invoice_id: str, recipient_name: str, invoice_number: str,
    ) -> None:
        await self._enter("update_recipient")
        if invoice_id not in self.rows:
            raise ResourceNotFoundError("Invoice", invoice_id)
        self.rows[invoice_id] = replace(
            self.rows[invoice_id],
            recipient_name=recipient_name,
            invoice_number=invoice_number,
        )
