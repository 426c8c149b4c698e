"""Mailbox State — reducer for the in-memory notification cache.

Invariants:
    - entries are ordered by timestamp descending
    - unread_count is always derived from entries, never stored
    - Every transition (local or load) takes the next sequence number; a load
      result is applied only if its number is still the latest issued
    - pending_ids holds optimistic local changes not yet confirmed by a load

Design Decisions:
    - Mutable dataclass with explicit transition methods, no IO: the mailbox
      service decides when to call them around remote calls
    - A load replaces entries wholesale and clears pending_ids: server truth wins
"""

from dataclasses import dataclass, field

from invoicing_core.core.domain_types import Notification, NotificationId


@dataclass
class MailboxState:
    """Per-user notification cache. Pure dataclass, no IO."""

    entries: list[Notification] = field(default_factory=list)
    pending_ids: set[NotificationId] = field(default_factory=set)

    # Monotonic request/transition counter
    issued_seq: int = 0
    # Sequence number of the last load() result applied
    applied_seq: int = 0

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.entries if not n.read)

    @property
    def ids(self) -> set[NotificationId]:
        return {n.id for n in self.entries}

    def next_seq(self) -> int:
        self.issued_seq += 1
        return self.issued_seq

    def is_latest(self, seq: int) -> bool:
        return seq == self.issued_seq

    # ─── Transitions ─────────────────────────────────────────────

    def apply_loaded(self, seq: int, rows: list[Notification]) -> bool:
        """Replace the cache with server truth. False if the result is stale."""
        if not self.is_latest(seq):
            return False
        self.entries = sorted(rows, key=lambda n: n.timestamp, reverse=True)
        self.pending_ids.clear()
        self.applied_seq = seq
        return True

    def prepend(self, notification: Notification) -> None:
        self.next_seq()
        self.entries.insert(0, notification)
        self.pending_ids.add(notification.id)

    def mark_read(self, notification_id: NotificationId) -> None:
        self.next_seq()
        updated = []
        for n in self.entries:
            if n.id == notification_id and not n.read:
                n = n.as_read()
                self.pending_ids.add(n.id)
            updated.append(n)
        self.entries = updated

    def mark_all_read(self) -> None:
        self.next_seq()
        for n in self.entries:
            if not n.read:
                self.pending_ids.add(n.id)
        self.entries = [n.as_read() for n in self.entries]

    def remove(self, notification_id: NotificationId) -> None:
        self.next_seq()
        self.entries = [n for n in self.entries if n.id != notification_id]
        self.pending_ids.discard(notification_id)

    def clear(self) -> None:
        """Drop every entry (confirmed bulk delete, or no signed-in user)."""
        self.next_seq()
        self.entries = []
        self.pending_ids.clear()
