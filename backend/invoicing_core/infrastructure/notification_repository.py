"""SQL Notification Repository — NotificationRepository over the notifications table.

Invariants:
    - Every statement is filtered by user_id (a user never touches another's rows)
    - list_for_user returns timestamp descending
    - Deleting a missing row is not an error (delete is idempotent)
"""

import logging

from sqlalchemy import delete, select, update

from invoicing_core.core.domain_types import (
    Notification, NotificationId, Severity, UserId,
)
from invoicing_core.core.session_expiry import as_utc
from invoicing_core.infrastructure.database import DatabaseSessionManager
from invoicing_core.models.notification import NotificationRecord

logger = logging.getLogger(__name__)


def _to_domain(row: NotificationRecord) -> Notification:
    try:
        severity = Severity(row.type)
    except ValueError:
        logger.warning(
            f"Unknown notification type '{row.type}', treating as info",
            extra={"notification_id": row.id},
        )
        severity = Severity.INFO
    return Notification(
        id=NotificationId(row.id),
        user_id=UserId(row.user_id),
        timestamp=as_utc(row.timestamp),
        message=row.message,
        severity=severity,
        read=bool(row.read),
        payload=dict(row.data or {}),
    )


class SqlNotificationRepository:
    """Notification persistence on SQLAlchemy async sessions."""

    def __init__(self, db: DatabaseSessionManager):
        self.db = db

    async def list_for_user(self, user_id: UserId) -> list[Notification]:
        async with self.db.session() as session:
            result = await session.execute(
                select(NotificationRecord)
                .where(NotificationRecord.user_id == user_id)
                .order_by(NotificationRecord.timestamp.desc())
            )
            return [_to_domain(row) for row in result.scalars().all()]

    async def insert(self, notification: Notification) -> None:
        async with self.db.session() as session:
            session.add(NotificationRecord(
                user_id=notification.user_id,
                id=notification.id,
                timestamp=as_utc(notification.timestamp),
                message=notification.message,
                type=notification.severity.value,
                read=notification.read,
                data=dict(notification.payload),
            ))
            await session.commit()

    async def mark_read(
        self, user_id: UserId, notification_id: NotificationId,
    ) -> None:
        async with self.db.session() as session:
            await session.execute(
                update(NotificationRecord)
                .where(NotificationRecord.user_id == user_id)
                .where(NotificationRecord.id == notification_id)
                .values(read=True)
            )
            await session.commit()

    async def mark_all_read(self, user_id: UserId) -> None:
        async with self.db.session() as session:
            await session.execute(
                update(NotificationRecord)
                .where(NotificationRecord.user_id == user_id)
                .where(NotificationRecord.read.is_(False))
                .values(read=True)
            )
            await session.commit()

    async def delete(
        self, user_id: UserId, notification_id: NotificationId,
    ) -> None:
        async with self.db.session() as session:
            await session.execute(
                delete(NotificationRecord)
                .where(NotificationRecord.user_id == user_id)
                .where(NotificationRecord.id == notification_id)
            )
            await session.commit()

    async def delete_all(self, user_id: UserId) -> None:
        async with self.db.session() as session:
            await session.execute(
                delete(NotificationRecord)
                .where(NotificationRecord.user_id == user_id)
            )
            await session.commit()
