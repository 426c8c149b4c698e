"""Invoice Store — the signed-in user's saved and recently deleted invoices.

Invariants:
    - Reads return [] when signed out or on remote failure (logged)
    - deleted_invoices only covers the retention window, most recent deletion first
    - change_recipient keeps date key and serial; only the prefix follows the new name
"""

import logging
from datetime import timedelta

from invoicing_core.core.domain_types import Clock, InvoiceSummary, Signal, UserId
from invoicing_core.core.errors import InvoicingError
from invoicing_core.core.invoice_numbers import rewrite_prefix
from invoicing_core.core.repository_protocols import AuthProvider, InvoiceRepository
from invoicing_core.core.session_expiry import utcnow
from invoicing_core.services.event_bus import EventBus

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=30)


class InvoiceStore:
    def __init__(
        self,
        auth: AuthProvider,
        repo: InvoiceRepository,
        bus: EventBus,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Clock = utcnow,
    ):
        self.auth = auth
        self.repo = repo
        self.bus = bus
        self.retention = retention
        self._clock = clock

    async def saved_invoices(self) -> list[InvoiceSummary]:
        try:
            user_id = await self._current_user_id()
            if user_id is None:
                return []
            return await self.repo.list_saved(user_id)
        except InvoicingError as e:
            logger.warning(f"Loading saved invoices failed: {e.message}", extra=e.log_extra())
            return []

    async def deleted_invoices(self) -> list[InvoiceSummary]:
        try:
            user_id = await self._current_user_id()
            if user_id is None:
                return []
            since = self._clock() - self.retention
            return await self.repo.list_deleted(user_id, since)
        except InvoicingError as e:
            logger.warning(f"Loading deleted invoices failed: {e.message}", extra=e.log_extra())
            return []

    async def change_recipient(self, invoice_id: str, new_recipient_name: str) -> str | None:
        """Rename the recipient and re-prefix the number. Returns the new number."""
        try:
            user_id = await self._current_user_id()
            if user_id is None:
                return None
            invoice = await self.repo.get(invoice_id)
            if invoice is None:
                logger.warning(f"Invoice {invoice_id} not found", extra={"user_id": user_id})
                return None
            new_number = rewrite_prefix(invoice.invoice_number, new_recipient_name)
            await self.repo.update_recipient(invoice_id, new_recipient_name, new_number)
        except InvoicingError as e:
            logger.warning(f"Recipient change failed: {e.message}", extra=e.log_extra())
            return None
        self.bus.emit(Signal.INVOICES_UPDATED)
        return new_number

    async def _current_user_id(self) -> UserId | None:
        user = await self.auth.get_user()
        return user.id if user else None
