"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - UserId and NotificationId wrap str; never pass bare ids in domain logic
    - All valid states encoded as Enums, no raw string matching
    - Notification, AuthUser and AuthSession are frozen: transitions build new values

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: values are the exact strings stored remotely (notification type column)
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, NewType


# ─── Identity Types ──────────────────────────────────────────────

UserId = NewType("UserId", str)
NotificationId = NewType("NotificationId", str)

Clock = Callable[[], datetime]


# ─── Constants ───────────────────────────────────────────────────

DEFAULT_SESSION_TIMEOUT = timedelta(minutes=30)
NOTIFICATION_ID_PREFIX = "notification_"
DEFAULT_INVOICE_PREFIX = "CUST"

# Preference keys written at login and removed at logout
SESSION_SCOPED_KEYS: tuple[str, ...] = (
    "isLoggedIn", "userEmail", "userRole", "userPosition",
)


# ─── Enums ───────────────────────────────────────────────────────

class Severity(str, Enum):
    """Notification severity, stored as-is in the `type` column."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class AuthState(str, Enum):
    """SessionGuard states."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    TIMING_OUT = "timing_out"


class LogoutReason(str, Enum):
    EXPLICIT = "explicit"
    TIMEOUT = "timeout"
    EXTERNAL = "external"


class Signal(str, Enum):
    """Cross-component signals relayed by the EventBus. No payload."""
    LOGIN = "login"
    USER_UPDATED = "user_updated"
    INVOICES_UPDATED = "invoices_updated"


# ─── Auth Values ─────────────────────────────────────────────────

@dataclass(frozen=True)
class AuthUser:
    """User as reported by the auth provider."""
    id: UserId
    email: str | None = None
    role: str | None = None


@dataclass(frozen=True)
class AuthSession:
    """Live session as reported by the auth provider."""
    user: AuthUser
    access_token: str
    authenticated_at: datetime
    refresh_token: str | None = None
    expires_at: datetime | None = None

    @property
    def user_id(self) -> UserId:
        return self.user.id


@dataclass(frozen=True)
class UserProfile:
    """Profile data handed to SessionGuard.complete_login()."""
    email: str
    user_id: UserId | None = None
    name: str | None = None
    phone: str | None = None
    position: str | None = None
    role: str | None = None


# ─── Notification ────────────────────────────────────────────────

@dataclass(frozen=True)
class Notification:
    """One mailbox entry. Ordering for display is timestamp descending."""
    id: NotificationId
    user_id: UserId
    timestamp: datetime
    message: str
    severity: Severity = Severity.INFO
    read: bool = False
    payload: dict[str, Any] = field(default_factory=dict)

    def as_read(self) -> "Notification":
        return replace(self, read=True)


def notification_id_for(epoch_ms: int) -> NotificationId:
    """Format a notification id: notification_<millisecond-epoch>."""
    return NotificationId(f"{NOTIFICATION_ID_PREFIX}{epoch_ms}")


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def epoch_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


# ─── Invoice ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class InvoiceSummary:
    """Read model of an invoice row."""
    id: str
    invoice_number: str
    recipient_name: str | None
    created_at: datetime
    created_by: UserId | None = None
    deleted_at: datetime | None = None
    deleted_by: UserId | None = None
