"""Activity Record ORM — remote mirror of the session's last activity.

Invariants:
    - Exactly one row per user (user_id is the primary key)
    - Written only through an upsert, never a read-then-insert
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_core.db.base import Base


class ActivityRecord(Base):
    __tablename__ = "user_sessions"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
