"""Invoice Numbers — pure formatting, parsing and prefix rules for PREFIX-YYYYMMDD-NNNN.

Invariants:
    - Prefix is the first 4 characters of the trimmed recipient name, uppercased,
      else "CUST"
    - date_key is exactly 8 digits (YYYYMMDD)
    - Serial is zero-padded to 4 digits
    - rewrite_prefix never raises: malformed input is returned unchanged

Design Decisions:
    - The prefix keeps whatever characters the name starts with (digits, spaces,
      punctuation), so such numbers fall outside INVOICE_NUMBER_PATTERN
    - Fallback serial takes the RNG as a parameter: deterministic under test
"""

import random
import re
from datetime import date

from invoicing_core.core.domain_types import DEFAULT_INVOICE_PREFIX

INVOICE_NUMBER_PATTERN = re.compile(r"^[A-Z]{1,4}-\d{8}-\d{4}$")

PREFIX_LENGTH = 4
SERIAL_WIDTH = 4
FALLBACK_SERIAL_MIN = 1000
FALLBACK_SERIAL_MAX = 9999


def customer_prefix(recipient_name: str | None) -> str:
    """First four characters of the trimmed name, uppercased. "CUST" when empty."""
    prefix = (recipient_name or "").strip()[:PREFIX_LENGTH].upper()
    return prefix or DEFAULT_INVOICE_PREFIX


def date_key(day: date) -> str:
    return day.strftime("%Y%m%d")


def format_invoice_number(prefix: str, day_key: str, serial: int) -> str:
    return f"{prefix}-{day_key}-{serial:0{SERIAL_WIDTH}d}"


def fallback_serial(rng: random.Random) -> int:
    """Pseudo-random serial used when the remote counter is unreachable.

    Can collide with a serial issued by the counter or by another fallback.
    """
    return rng.randint(FALLBACK_SERIAL_MIN, FALLBACK_SERIAL_MAX)


def rewrite_prefix(current_number: str, new_recipient_name: str) -> str:
    """Swap the prefix for the new recipient, keeping date_key and serial."""
    if not current_number or not new_recipient_name:
        return current_number
    parts = current_number.split("-")
    if len(parts) != 3:
        return current_number
    parts[0] = customer_prefix(new_recipient_name)
    return "-".join(parts)


def is_valid_invoice_number(value: str) -> bool:
    return bool(INVOICE_NUMBER_PATTERN.match(value or ""))
