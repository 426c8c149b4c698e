"""Domain Types — tests for id formatting, enums and immutable values."""

import dataclasses
from datetime import datetime, timezone

import pytest

from invoicing_core.core.domain_types import (
    AuthSession, AuthUser, Notification, NotificationId, Severity, Signal, UserId,
    epoch_ms, notification_id_for,
)


def test_notification_id_format():
    assert notification_id_for(1714564800123) == "notification_1714564800123"


def test_epoch_ms_from_aware_datetime():
    moment = datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)
    assert epoch_ms(moment) == 1714564800123


def test_severity_values_are_stored_strings():
    assert [s.value for s in Severity] == ["info", "success", "warning", "error"]


def test_signal_names():
    assert {s.value for s in Signal} == {"login", "user_updated", "invoices_updated"}


def test_notification_is_frozen_and_as_read_copies():
    n = Notification(
        id=NotificationId("notification_1"),
        user_id=UserId("u1"),
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
        message="hello",
    )
    with pytest.raises(dataclasses.FrozenInstanceError):
        n.read = True  # type: ignore[misc]
    read = n.as_read()
    assert read.read and not n.read
    assert read.id == n.id


def test_auth_session_exposes_user_id():
    session = AuthSession(
        user=AuthUser(id=UserId("u1"), email="a@b.c"),
        access_token="tok",
        authenticated_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    assert session.user_id == "u1"
