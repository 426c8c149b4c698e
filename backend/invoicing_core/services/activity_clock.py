"""Activity Clock — local last-activity timestamp with fire-and-forget remote persistence.

Invariants:
    - touch() never blocks, never raises and never retries
    - is_expired is strict (> timeout) and False when no activity was recorded
    - Remote persistence only happens for a bound user

Design Decisions:
    - Local time is authoritative for this process; the remote row is a hint
      for other tabs/processes, read by SessionGuard at check time
    - Persist tasks tracked in a set: drain() awaits them on shutdown
"""

import asyncio
import logging
from datetime import datetime, timedelta

from invoicing_core.core.domain_types import Clock, UserId
from invoicing_core.core.errors import InvoicingError
from invoicing_core.core.repository_protocols import ActivityRepository
from invoicing_core.core.session_expiry import is_expired, utcnow

logger = logging.getLogger(__name__)


class ActivityClock:
    """Tracks the most recent user activity."""

    def __init__(self, activity_repo: ActivityRepository, clock: Clock = utcnow):
        self.activity_repo = activity_repo
        self._clock = clock
        self._user_id: UserId | None = None
        self._last_activity_at: datetime | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def last_activity_at(self) -> datetime | None:
        return self._last_activity_at

    @property
    def user_id(self) -> UserId | None:
        return self._user_id

    def now(self) -> datetime:
        return self._clock()

    def bind_user(self, user_id: UserId | None) -> None:
        self._user_id = user_id

    def touch(self) -> datetime:
        """Record now as the last activity and schedule the remote upsert."""
        at = self._clock()
        self._last_activity_at = at
        if self._user_id is not None:
            task = asyncio.create_task(self._persist(self._user_id, at))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return at

    def is_expired(self, timeout: timedelta) -> bool:
        return is_expired(self._last_activity_at, self._clock(), timeout)

    def reset(self) -> None:
        self._user_id = None
        self._last_activity_at = None

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _persist(self, user_id: UserId, at: datetime) -> None:
        try:
            await self.activity_repo.upsert_last_activity(user_id, at)
        except InvoicingError as e:
            logger.warning(
                f"Activity upsert failed: {e.message}",
                extra={"user_id": user_id, "error_code": e.code},
            )
        except Exception as e:
            logger.error(
                f"Unexpected activity upsert error: {e}",
                extra={"user_id": user_id}, exc_info=True,
            )
