"""SQL Invoice Repositories — atomic serial counter and invoice read model.

Invariants:
    - next_serial is ONE statement: INSERT ... ON CONFLICT DO UPDATE ... RETURNING.
      Mutual exclusion comes from the database row lock, never from the client
    - First serial for a new (prefix, date_key) is 1
    - list_saved excludes soft-deleted rows; list_deleted only returns the caller's deletions
    - update_recipient on a missing invoice raises ResourceNotFoundError
"""

import logging
from datetime import datetime

from sqlalchemy import func, select, update

from invoicing_core.core.domain_types import InvoiceSummary, UserId
from invoicing_core.core.errors import DatabaseError, ResourceNotFoundError
from invoicing_core.core.session_expiry import as_utc
from invoicing_core.infrastructure.database import DatabaseSessionManager, dialect_insert
from invoicing_core.models.invoice import Invoice
from invoicing_core.models.invoice_serial import InvoiceSerial

logger = logging.getLogger(__name__)


class SqlInvoiceSerialCounter:
    """Remote atomic increment-and-return keyed by (prefix, date_key)."""

    def __init__(self, db: DatabaseSessionManager):
        self.db = db

    async def next_serial(self, prefix: str, date_key: str) -> int:
        table = InvoiceSerial.__table__
        insert = dialect_insert(self.db.dialect_name)
        stmt = insert(table).values(
            prefix=prefix, date_key=date_key, current_value=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.prefix, table.c.date_key],
            set_={
                "current_value": table.c.current_value + 1,
                "updated_at": func.now(),
            },
        ).returning(table.c.current_value)

        async with self.db.session() as session:
            result = await session.execute(stmt)
            value = result.scalar_one_or_none()
            await session.commit()
        if value is None:
            raise DatabaseError("counter returned no row", "next_serial")
        return int(value)


def _to_summary(row: Invoice) -> InvoiceSummary:
    return InvoiceSummary(
        id=row.id,
        invoice_number=row.invoice_number,
        recipient_name=row.recipient_name,
        created_at=as_utc(row.created_at),
        created_by=UserId(row.created_by) if row.created_by else None,
        deleted_at=as_utc(row.deleted_at) if row.deleted_at else None,
        deleted_by=UserId(row.deleted_by) if row.deleted_by else None,
    )


class SqlInvoiceRepository:
    """Invoice read model and number rewrites."""

    def __init__(self, db: DatabaseSessionManager):
        self.db = db

    async def list_saved(self, user_id: UserId) -> list[InvoiceSummary]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Invoice)
                .where(Invoice.created_by == user_id)
                .where(Invoice.deleted_at.is_(None))
                .order_by(Invoice.created_at.desc())
            )
            return [_to_summary(row) for row in result.scalars().all()]

    async def list_deleted(
        self, user_id: UserId, deleted_since: datetime,
    ) -> list[InvoiceSummary]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Invoice)
                .where(Invoice.deleted_by == user_id)
                .where(Invoice.deleted_at.is_not(None))
                .where(Invoice.deleted_at >= as_utc(deleted_since))
                .order_by(Invoice.deleted_at.desc())
            )
            return [_to_summary(row) for row in result.scalars().all()]

    async def get(self, invoice_id: str) -> InvoiceSummary | None:
        async with self.db.session() as session:
            result = await session.execute(
                select(Invoice).where(Invoice.id == invoice_id),
            )
            row = result.scalar_one_or_none()
            return _to_summary(row) if row else None

    async def update_recipient(
        self, invoice_id: str, recipient_name: str, invoice_number: str,
    ) -> None:
        async with self.db.session() as session:
            result = await session.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id)
                .values(
                    recipient_name=recipient_name,
                    invoice_number=invoice_number,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        if not result.rowcount:
            raise ResourceNotFoundError("Invoice", invoice_id)
        logger.info(
            f"Invoice {invoice_id} renumbered",
            extra={"invoice_number": invoice_number},
        )
