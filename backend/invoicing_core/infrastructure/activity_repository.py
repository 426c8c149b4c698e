"""SQL Activity Repository — one-row-per-user last-activity record.

Invariants:
    - upsert_last_activity is a single INSERT ... ON CONFLICT DO UPDATE (no read first)
    - Timestamps are stored and returned as UTC
"""

from datetime import datetime

from sqlalchemy import select

from invoicing_core.core.domain_types import UserId
from invoicing_core.core.session_expiry import as_utc
from invoicing_core.infrastructure.database import DatabaseSessionManager, dialect_insert
from invoicing_core.models.activity_record import ActivityRecord


class SqlActivityRepository:
    """ActivityRecord persistence on SQLAlchemy async sessions."""

    def __init__(self, db: DatabaseSessionManager):
        self.db = db

    async def get_last_activity(self, user_id: UserId) -> datetime | None:
        async with self.db.session() as session:
            result = await session.execute(
                select(ActivityRecord.last_activity)
                .where(ActivityRecord.user_id == user_id)
            )
            value = result.scalar_one_or_none()
        return as_utc(value) if value is not None else None

    async def upsert_last_activity(self, user_id: UserId, at: datetime) -> None:
        table = ActivityRecord.__table__
        insert = dialect_insert(self.db.dialect_name)
        stmt = insert(table).values(user_id=user_id, last_activity=as_utc(at))
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id],
            set_={"last_activity": stmt.excluded.last_activity},
        )
        async with self.db.session() as session:
            await session.execute(stmt)
            await session.commit()
