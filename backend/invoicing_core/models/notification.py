"""Notification ORM — one row per mailbox entry.

Invariants:
    - (user_id, id) is the primary key: ids are unique per user
    - id has the form notification_<millisecond-epoch>
    - `type` holds the Severity value, `data` the opaque payload
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_core.db.base import Base


class NotificationRecord(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_timestamp", "user_id", "timestamp"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="info")
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
