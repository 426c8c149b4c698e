"""ORM Models — SQLAlchemy declarative models for the remote store tables.

Invariants:
    - All models inherit from Base (db/base.py)
    - Every per-user table is keyed (or indexed) by user_id

Design Decisions:
    - One file per table for locality
    - All models imported here so Base.metadata is complete before create_all
"""

from invoicing_core.models.notification import NotificationRecord  # noqa: F401
from invoicing_core.models.activity_record import ActivityRecord  # noqa: F401
from invoicing_core.models.invoice_serial import InvoiceSerial  # noqa: F401
from invoicing_core.models.user_preferences import UserPreferences  # noqa: F401
from invoicing_core.models.invoice import Invoice  # noqa: F401
