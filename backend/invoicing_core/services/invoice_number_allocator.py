"""Invoice Number Allocator — PREFIX-YYYYMMDD-NNNN from a remote atomic counter.

Invariants:
    - The serial comes from ONE remote increment-and-return per call; no client-side
      read-then-write, so concurrent callers never share a serial on that path
    - Remote failure falls back to a pseudo-random 1000–9999 serial (logged: may collide)
    - Numbers match INVOICE_NUMBER_PATTERN while the prefix is letters and serials stay ≤ 9999

Design Decisions:
    - today() and rng injectable: deterministic date keys and fallbacks in tests
"""

import logging
import random
from datetime import date
from typing import Callable

from invoicing_core.core.errors import InvoicingError
from invoicing_core.core.invoice_numbers import (
    customer_prefix, date_key, fallback_serial, format_invoice_number, rewrite_prefix,
)
from invoicing_core.core.repository_protocols import InvoiceSerialCounter

logger = logging.getLogger(__name__)


class InvoiceNumberAllocator:
    """Allocates invoice numbers per (customer prefix, day)."""

    def __init__(
        self,
        counter: InvoiceSerialCounter,
        *,
        today: Callable[[], date] = date.today,
        rng: random.Random | None = None,
    ):
        self.counter = counter
        self._today = today
        self._rng = rng or random.Random()

    async def generate(self, recipient_name: str | None) -> str:
        prefix = customer_prefix(recipient_name)
        day_key = date_key(self._today())
        serial: int | None
        try:
            serial = await self.counter.next_serial(prefix, day_key)
        except InvoicingError as e:
            logger.warning(
                f"Serial counter failed: {e.message}",
                extra={"error_code": e.code, "operation": "next_serial"},
            )
            serial = None
        if not serial or serial < 1:
            serial = fallback_serial(self._rng)
            logger.warning(
                f"Using fallback serial {serial} for {prefix}-{day_key} "
                "(may collide with an issued number)",
                extra={"invoice_number": format_invoice_number(prefix, day_key, serial)},
            )
        return format_invoice_number(prefix, day_key, serial)

    def rewrite_prefix(self, current_number: str, new_recipient_name: str) -> str:
        return rewrite_prefix(current_number, new_recipient_name)
