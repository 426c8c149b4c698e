"""Boundary Protocols — contracts between core/services and the shell.

Invariants:
    - Services NEVER import concrete adapters; dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Failures surface as InvoicingError subclasses (core/errors.py), never raw driver errors

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - One Protocol per remote table instead of a generic query builder: each
      service sees only the filters it is allowed to run
"""

from datetime import datetime
from typing import Any, Callable, Protocol

from invoicing_core.core.domain_types import (
    AuthSession, AuthUser, InvoiceSummary, Notification, NotificationId, UserId,
)


AuthStateCallback = Callable[[str, AuthSession | None], None]


class AuthProvider(Protocol):
    """External auth provider: current session/user, sign-out, state changes."""
    async def get_session(self) -> AuthSession | None: ...
    async def get_user(self) -> AuthUser | None: ...
    async def sign_out(self) -> None: ...
    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register callback(event, session). Returns an unsubscribe function."""
        ...


class KeyValueStore(Protocol):
    """Persistent key-value preferences scoped to the signed-in user."""
    async def get(self, key: str, default: Any = None) -> Any: ...
    async def set(self, key: str, value: Any) -> bool: ...
    async def remove(self, key: str) -> bool: ...
    async def clear_all(self) -> bool: ...


class NotificationRepository(Protocol):
    """Contract for the remote notifications table."""
    async def list_for_user(self, user_id: UserId) -> list[Notification]:
        """All notifications of the user, timestamp descending."""
        ...
    async def insert(self, notification: Notification) -> None: ...
    async def mark_read(self, user_id: UserId, notification_id: NotificationId) -> None: ...
    async def mark_all_read(self, user_id: UserId) -> None: ...
    async def delete(self, user_id: UserId, notification_id: NotificationId) -> None: ...
    async def delete_all(self, user_id: UserId) -> None: ...


class ActivityRepository(Protocol):
    """Contract for the one-row-per-user activity record."""
    async def get_last_activity(self, user_id: UserId) -> datetime | None: ...
    async def upsert_last_activity(self, user_id: UserId, at: datetime) -> None: ...


class InvoiceSerialCounter(Protocol):
    """Remote atomic increment-and-return keyed by (prefix, date_key)."""
    async def next_serial(self, prefix: str, date_key: str) -> int: ...


class InvoiceRepository(Protocol):
    """Contract for the invoice read model and number rewrites."""
    async def list_saved(self, user_id: UserId) -> list[InvoiceSummary]: ...
    async def list_deleted(
        self, user_id: UserId, deleted_since: datetime,
    ) -> list[InvoiceSummary]: ...
    async def get(self, invoice_id: str) -> InvoiceSummary | None: ...
    async def update_recipient(
        self, invoice_id: str, recipient_name: str, invoice_number: str,
    ) -> None: ...
