"""Invoice Serial ORM — atomic per-(prefix, day) counter.

Invariants:
    - (prefix, date_key) is the primary key
    - current_value is the last serial handed out; it only ever increases
    - Incremented exclusively with INSERT ... ON CONFLICT DO UPDATE ... RETURNING
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_core.db.base import Base


class InvoiceSerial(Base):
    __tablename__ = "invoice_serials"
    __table_args__ = (
        CheckConstraint("length(date_key) = 8", name="ck_invoice_serial_date_len"),
        CheckConstraint("current_value >= 0", name="ck_invoice_serial_non_negative"),
    )

    prefix: Mapped[str] = mapped_column(String(4), primary_key=True)
    date_key: Mapped[str] = mapped_column(String(8), primary_key=True)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )
