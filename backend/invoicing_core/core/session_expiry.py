"""Session Expiry — pure idle-timeout arithmetic shared by ActivityClock and SessionGuard.

Invariants:
    - Expired means strictly more than `timeout` elapsed (equal is still live)
    - No recorded activity is never expired on its own
    - The fresher of local and remote activity wins (multi-tab safety)
    - All datetimes are timezone-aware UTC

Design Decisions:
    - decide_expiry returns a value instead of acting: SessionGuard performs the
      logout or re-arm, this module only decides
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops the offset)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def is_expired(
    last_activity: datetime | None, now: datetime, timeout: timedelta,
) -> bool:
    if last_activity is None:
        return False
    return now - as_utc(last_activity) > timeout


def fresher(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(as_utc(a), as_utc(b))


@dataclass(frozen=True)
class ExpiryDecision:
    """Outcome of an idle-timer check.

    logout=True → force logout. Otherwise re-arm after `rearm_after`.
    """
    logout: bool
    rearm_after: timedelta
    effective_last_activity: datetime | None


def decide_expiry(
    local_last_activity: datetime | None,
    remote_last_activity: datetime | None,
    now: datetime,
    timeout: timedelta,
) -> ExpiryDecision:
    """Decide what a fired idle timer should do."""
    effective = fresher(local_last_activity, remote_last_activity)
    if effective is None:
        return ExpiryDecision(False, timeout, None)
    if is_expired(effective, now, timeout):
        return ExpiryDecision(True, timedelta(0), effective)
    remaining = timeout - (now - effective)
    # Floor of one second between checks
    return ExpiryDecision(False, max(remaining, timedelta(seconds=1)), effective)
