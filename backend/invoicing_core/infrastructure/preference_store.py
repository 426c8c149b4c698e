"""SQL Preference Store — KeyValueStore over the per-user user_preferences row.

Invariants:
    - Scoped to the user the auth provider currently reports; no user → default / False
    - Writes are compare-and-swap on `version`: a concurrent writer forces a re-read,
      never a blind overwrite of the whole map
    - remove() and clear_all() never create a missing row
    - Failures are logged and reported as False / default, never raised

Design Decisions:
    - Optimistic retry loop shaped like a unit-of-work retry: read, mutate a copy,
      conditional UPDATE, re-run on zero rows affected
    - First write for a user races on INSERT; the loser's IntegrityError
      (mapped to DatabaseError "commit") re-runs the loop and takes the UPDATE path
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import select, update

from invoicing_core.core.domain_types import UserId
from invoicing_core.core.errors import (
    ConcurrencyError, DatabaseError, ErrorContext, InvoicingError,
)
from invoicing_core.core.repository_protocols import AuthProvider
from invoicing_core.infrastructure.database import DatabaseSessionManager
from invoicing_core.models.user_preferences import UserPreferences

logger = logging.getLogger(__name__)

Mutation = Callable[[dict[str, Any]], dict[str, Any]]


class SqlPreferenceStore:
    """User-scoped preferences with optimistic concurrency on the version column."""

    def __init__(
        self,
        db: DatabaseSessionManager,
        auth: AuthProvider,
        max_attempts: int = 3,
    ):
        self.db = db
        self.auth = auth
        self.max_attempts = max_attempts

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            user_id = await self._current_user_id()
            if user_id is None:
                return default
            row = await self._read(user_id)
        except InvoicingError as e:
            logger.warning(
                f"Preference read failed for '{key}': {e.message}",
                extra=e.log_extra(),
            )
            return default
        if row is None:
            return default
        return row[0].get(key, default)

    async def set(self, key: str, value: Any) -> bool:
        def put(prefs: dict[str, Any]) -> dict[str, Any]:
            prefs[key] = value
            return prefs
        return await self._write(f"set:{key}", put, create=True)

    async def remove(self, key: str) -> bool:
        def drop(prefs: dict[str, Any]) -> dict[str, Any]:
            prefs.pop(key, None)
            return prefs
        return await self._write(f"remove:{key}", drop, create=False)

    async def clear_all(self) -> bool:
        return await self._write("clear_all", lambda _: {}, create=False)

    # ─── Internals ───────────────────────────────────────────────

    async def _current_user_id(self) -> UserId | None:
        user = await self.auth.get_user()
        return user.id if user else None

    async def _read(self, user_id: UserId) -> tuple[dict[str, Any], int] | None:
        async with self.db.session() as session:
            result = await session.execute(
                select(UserPreferences.preferences, UserPreferences.version)
                .where(UserPreferences.user_id == user_id)
            )
            row = result.one_or_none()
        if row is None:
            return None
        return dict(row[0] or {}), int(row[1])

    async def _write(self, operation: str, mutate: Mutation, *, create: bool) -> bool:
        try:
            user_id = await self._current_user_id()
            if user_id is None:
                return False
            await self._apply(user_id, operation, mutate, create)
            return True
        except InvoicingError as e:
            logger.warning(
                f"Preference {operation} failed: {e.message}",
                extra=e.log_extra(),
            )
            return False

    async def _apply(
        self, user_id: UserId, operation: str, mutate: Mutation, create: bool,
    ) -> None:
        for attempt in range(1, self.max_attempts + 1):
            current = await self._read(user_id)
            if current is None:
                if not create:
                    return
                if await self._try_insert(user_id, mutate({})):
                    return
            else:
                prefs, version = current
                if await self._try_update(user_id, version, mutate(prefs)):
                    return
            logger.info(
                f"Preference write conflict, retrying ({operation})",
                extra={"user_id": user_id, "attempt": attempt},
            )
        raise ConcurrencyError(
            f"Preference {operation} lost {self.max_attempts} races",
            ErrorContext(user_id=user_id, operation=operation),
        )

    async def _try_insert(self, user_id: UserId, prefs: dict[str, Any]) -> bool:
        try:
            async with self.db.session() as session:
                session.add(UserPreferences(
                    user_id=user_id, preferences=prefs, version=1,
                ))
                await session.commit()
        except DatabaseError as e:
            if e.operation == "commit":
                return False
            raise
        return True

    async def _try_update(
        self, user_id: UserId, version: int, prefs: dict[str, Any],
    ) -> bool:
        async with self.db.session() as session:
            result = await session.execute(
                update(UserPreferences)
                .where(UserPreferences.user_id == user_id)
                .where(UserPreferences.version == version)
                .values(
                    preferences=prefs,
                    version=version + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return bool(result.rowcount)
