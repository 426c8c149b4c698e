"""Notification Mailbox — per-user notification cache synchronized with the remote store.

Invariants:
    - unread_count is always derived from the cache (MailboxState)
    - add / mark_read / mark_all_read are optimistic: cache first, remote after,
      cache kept on remote failure (reconciled by the next load); they return
      False when the remote write failed
    - remove / clear_all are remote-first: cache untouched on remote failure
    - A load() result is applied only if no newer load or local transition was issued
    - No signed-in user → operations return False / empty, never raise
    - Ids are notification_<ms> and unique per user
    - A provider sign-out empties the cache and discards in-flight loads

Design Decisions:
    - Reducer (core/mailbox_state.py) holds all cache rules; this service only
      sequences remote calls around its transitions
    - load() subscribed to LOGIN, USER_UPDATED, INVOICES_UPDATED via the injected EventBus
    - Cache cleared from the provider's auth-state callback, so explicit, timeout
      and external logouts are all covered without a dedicated signal
"""

import logging
from datetime import datetime
from typing import Any, Callable

from invoicing_core.core.domain_types import (
    AuthSession, Clock, Notification, NotificationId, Severity, Signal, UserId,
    epoch_ms, notification_id_for,
)
from invoicing_core.core.errors import InvoicingError
from invoicing_core.core.mailbox_state import MailboxState
from invoicing_core.core.repository_protocols import AuthProvider, NotificationRepository
from invoicing_core.core.session_expiry import utcnow
from invoicing_core.services.event_bus import EventBus

logger = logging.getLogger(__name__)

RELOAD_SIGNALS = (Signal.LOGIN, Signal.USER_UPDATED, Signal.INVOICES_UPDATED)


class NotificationMailbox:
    """In-memory view of the signed-in user's notifications."""

    def __init__(
        self,
        auth: AuthProvider,
        repo: NotificationRepository,
        bus: EventBus,
        clock: Clock = utcnow,
    ):
        self.auth = auth
        self.repo = repo
        self.bus = bus
        self._clock = clock
        self.state = MailboxState()
        self._last_id_ms = 0
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def notifications(self) -> list[Notification]:
        return list(self.state.entries)

    @property
    def unread_count(self) -> int:
        return self.state.unread_count

    # ─── Lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        if self._unsubscribers:
            return
        for signal in RELOAD_SIGNALS:
            self._unsubscribers.append(self.bus.subscribe(signal, self._on_signal))
        self._unsubscribers.append(self.auth.on_auth_state_change(self._on_auth_event))

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _on_signal(self):
        return self.load()

    def _on_auth_event(self, event: str, session: AuthSession | None) -> None:
        if session is None:
            logger.info(f"Notification cache cleared ({event})")
            self.state.clear()

    # ─── Operations ──────────────────────────────────────────────

    async def load(self) -> bool:
        """Replace the cache with the remote list. True when the result was applied."""
        seq = self.state.next_seq()
        try:
            user_id = await self._current_user_id()
            rows = await self.repo.list_for_user(user_id) if user_id else []
        except InvoicingError as e:
            logger.warning(
                f"Notification load failed, keeping cache: {e.message}",
                extra=e.log_extra(),
            )
            return False
        applied = self.state.apply_loaded(seq, rows)
        if not applied:
            logger.debug("Stale notification load discarded", extra={"user_id": user_id})
        return applied

    async def add(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Prepend a new unread entry, then persist it. False when the insert failed.

        The entry stays cached either way; the next load reconciles it.
        """
        user_id = await self._safe_user_id()
        if user_id is None:
            return False
        now = self._clock()
        notification = Notification(
            id=self._next_id(now),
            user_id=user_id,
            timestamp=now,
            message=message,
            severity=severity,
            read=False,
            payload=dict(payload or {}),
        )
        self.state.prepend(notification)
        try:
            await self.repo.insert(notification)
        except InvoicingError as e:
            logger.warning(
                f"Notification insert failed, kept locally: {e.message}",
                extra={"user_id": user_id, "notification_id": notification.id},
            )
            return False
        return True

    async def mark_read(self, notification_id: NotificationId) -> bool:
        user_id = await self._safe_user_id()
        if user_id is None:
            return False
        self.state.mark_read(notification_id)
        try:
            await self.repo.mark_read(user_id, notification_id)
        except InvoicingError as e:
            logger.warning(
                f"Remote mark_read failed: {e.message}",
                extra={"user_id": user_id, "notification_id": notification_id},
            )
            return False
        return True

    async def mark_all_read(self) -> bool:
        user_id = await self._safe_user_id()
        if user_id is None:
            return False
        self.state.mark_all_read()
        try:
            await self.repo.mark_all_read(user_id)
        except InvoicingError as e:
            logger.warning(
                f"Remote mark_all_read failed: {e.message}",
                extra={"user_id": user_id},
            )
            return False
        return True

    async def remove(self, notification_id: NotificationId) -> bool:
        user_id = await self._safe_user_id()
        if user_id is None:
            return False
        try:
            await self.repo.delete(user_id, notification_id)
        except InvoicingError as e:
            logger.warning(
                f"Remote delete failed, cache unchanged: {e.message}",
                extra={"user_id": user_id, "notification_id": notification_id},
            )
            return False
        self.state.remove(notification_id)
        return True

    async def clear_all(self) -> bool:
        user_id = await self._safe_user_id()
        if user_id is None:
            return False
        try:
            await self.repo.delete_all(user_id)
        except InvoicingError as e:
            logger.warning(
                f"Remote clear failed, cache unchanged: {e.message}",
                extra={"user_id": user_id},
            )
            return False
        self.state.clear()
        return True

    # ─── Internals ───────────────────────────────────────────────

    async def _current_user_id(self) -> UserId | None:
        user = await self.auth.get_user()
        return user.id if user else None

    async def _safe_user_id(self) -> UserId | None:
        try:
            return await self._current_user_id()
        except InvoicingError as e:
            logger.warning(f"Could not resolve user: {e.message}", extra=e.log_extra())
            return None

    def _next_id(self, now: datetime) -> NotificationId:
        """notification_<ms>, bumped past ids already issued or cached."""
        ms = max(epoch_ms(now), self._last_id_ms + 1)
        taken = self.state.ids
        while notification_id_for(ms) in taken:
            ms += 1
        self._last_id_ms = ms
        return notification_id_for(ms)
