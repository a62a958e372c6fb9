"""Unit tests for membership expiry and derived status."""
from datetime import datetime

import pytest

from aeroledger.config import settings
from aeroledger.exceptions import ValidationError
from aeroledger.models.invoice import InvoiceStatus
from aeroledger.models.membership import Membership
from aeroledger.schemas.membership import MembershipStatus
from aeroledger.services.membership_service import (
    add_months,
    calculate_expiry,
    can_renew,
    days_until_expiry,
    grace_days_remaining,
    membership_year_end,
    status_of,
)

NOW = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture
def april_year(monkeypatch):
    """Membership year running 1 April to 31 March."""
    monkeypatch.setattr(settings, "membership_year_policy", "fixed")
    monkeypatch.setattr(settings, "membership_year_start_month", 4)
    monkeypatch.setattr(settings, "membership_year_start_day", 1)
    monkeypatch.setattr(settings, "membership_year_end_month", 3)
    monkeypatch.setattr(settings, "membership_year_end_day", 31)


@pytest.mark.parametrize(
    "start,expected",
    [
        (datetime(2026, 10, 18), datetime(2027, 3, 31, 23, 59, 59)),
        (datetime(2026, 4, 1), datetime(2027, 3, 31, 23, 59, 59)),
        (datetime(2026, 2, 10), datetime(2026, 3, 31, 23, 59, 59)),
        (datetime(2026, 3, 31, 18, 0), datetime(2026, 3, 31, 23, 59, 59)),
    ],
)
def test_fixed_year_end(april_year, start, expected) -> None:
    assert membership_year_end(start) == expected


def test_calendar_membership_year(monkeypatch) -> None:
    monkeypatch.setattr(settings, "membership_year_start_month", 1)
    monkeypatch.setattr(settings, "membership_year_start_day", 1)
    monkeypatch.setattr(settings, "membership_year_end_month", 12)
    monkeypatch.setattr(settings, "membership_year_end_day", 31)

    assert membership_year_end(datetime(2026, 6, 15)) == datetime(2026, 12, 31, 23, 59, 59)


def test_add_months_clamps_day() -> None:
    assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
    assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)
    assert add_months(datetime(2026, 11, 15, 9, 30), 3) == datetime(2027, 2, 15, 9, 30)
    assert add_months(datetime(2026, 5, 31), 12) == datetime(2027, 5, 31)


def test_rolling_policy_adds_duration(monkeypatch) -> None:
    monkeypatch.setattr(settings, "membership_year_policy", "rolling")

    assert calculate_expiry(datetime(2026, 8, 31), 6) == datetime(2027, 2, 28)


def test_fixed_policy_ignores_duration(april_year) -> None:
    assert calculate_expiry(datetime(2026, 10, 18), 1) == datetime(2027, 3, 31, 23, 59, 59)


def test_explicit_expiry_wins(april_year) -> None:
    override = datetime(2027, 6, 30)

    assert calculate_expiry(datetime(2026, 10, 18), 12, override) == override


def test_explicit_expiry_must_follow_start() -> None:
    with pytest.raises(ValidationError) as exc_info:
        calculate_expiry(datetime(2026, 10, 18), 12, datetime(2026, 10, 1))

    assert exc_info.value.field == "expiry_date"


def _membership(expiry: datetime, grace_days: int = 30) -> Membership:
    return Membership(start_date=datetime(2026, 1, 1), expiry_date=expiry, grace_period_days=grace_days)


def test_unpaid_invoice_makes_membership_unpaid() -> None:
    membership = _membership(datetime(2027, 3, 31))

    assert status_of(membership, InvoiceStatus.PENDING, NOW) == MembershipStatus.UNPAID
    assert status_of(membership, InvoiceStatus.DRAFT, NOW) == MembershipStatus.UNPAID


def test_paid_or_uninvoiced_membership_follows_dates() -> None:
    membership = _membership(datetime(2027, 3, 31))

    assert status_of(membership, InvoiceStatus.PAID, NOW) == MembershipStatus.ACTIVE
    assert status_of(membership, None, NOW) == MembershipStatus.ACTIVE


def test_grace_then_expired() -> None:
    membership = _membership(datetime(2026, 10, 10, 12, 0), grace_days=30)

    assert status_of(membership, InvoiceStatus.PAID, NOW) == MembershipStatus.GRACE
    assert status_of(membership, InvoiceStatus.PAID, datetime(2026, 11, 10)) == MembershipStatus.EXPIRED


def test_day_counts() -> None:
    active = _membership(datetime(2026, 10, 28, 13, 0))
    assert days_until_expiry(active, MembershipStatus.ACTIVE, NOW) == 11
    assert grace_days_remaining(active, MembershipStatus.ACTIVE, NOW) is None

    lapsed = _membership(datetime(2026, 10, 10, 12, 0), grace_days=30)
    assert grace_days_remaining(lapsed, MembershipStatus.GRACE, NOW) == 22
    assert days_until_expiry(lapsed, MembershipStatus.GRACE, NOW) is None


def test_can_renew() -> None:
    assert can_renew(MembershipStatus.ACTIVE)
    assert can_renew(MembershipStatus.GRACE)
    assert not can_renew(MembershipStatus.EXPIRED)
    assert not can_renew(MembershipStatus.UNPAID)
