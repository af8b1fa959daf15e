"""
Tests for the booking/payment state machines, independent of storage.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from staybook.domain import lifecycle
from staybook.domain.enums import BookingStatus, PaymentStatus
from staybook.domain.periods import nights, overlaps, price_per_night

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def booking(status="pending", payment_status="pending"):
    return SimpleNamespace(
        status=status,
        payment_status=payment_status,
        cancellation_reason=None,
        cancelled_at=None,
    )


@pytest.mark.parametrize("current,target,allowed", [
    ("pending", "confirmed", True),
    ("pending", "cancelled", True),
    ("pending", "completed", False),
    ("confirmed", "completed", True),
    ("confirmed", "cancelled", True),
    ("confirmed", "pending", False),
    ("cancelled", "confirmed", False),
    ("cancelled", "cancelled", False),
    ("completed", "cancelled", False),
])
def test_booking_transition_table(current, target, allowed):
    assert lifecycle.can_transition(BookingStatus(current), BookingStatus(target)) is allowed


@pytest.mark.parametrize("current,target,allowed", [
    ("pending", "paid", True),
    ("pending", "failed", True),
    ("failed", "pending", True),
    ("failed", "paid", False),
    ("paid", "refunded", False),
    ("paid", "pending", False),
    ("refunded", "pending", False),
])
def test_payment_transition_table(current, target, allowed):
    assert lifecycle.can_transition_payment(PaymentStatus(current), PaymentStatus(target)) is allowed


def test_paid_auto_confirms_pending_booking():
    b = booking()
    result = lifecycle.change_payment_status(b, PaymentStatus.PAID)
    assert b.status == "confirmed"
    assert b.payment_status == "paid"
    assert result.auto_confirmed


def test_paid_leaves_confirmed_booking_alone():
    b = booking(status="confirmed")
    result = lifecycle.change_payment_status(b, PaymentStatus.PAID)
    assert b.status == "confirmed"
    assert not result.auto_confirmed


def test_cancel_refunds_paid_booking():
    b = booking(status="confirmed", payment_status="paid")
    result = lifecycle.change_status(b, BookingStatus.CANCELLED, NOW, "Overbooked")
    assert b.status == "cancelled"
    assert b.payment_status == "refunded"
    assert b.cancelled_at == NOW
    assert b.cancellation_reason == "Overbooked"
    assert result.refunded


def test_cancel_unpaid_keeps_payment_status():
    b = booking(payment_status="failed")
    result = lifecycle.cancel(b, NOW)
    assert b.payment_status == "failed"
    assert not result.refunded


def test_second_cancel_is_rejected_without_changes():
    b = booking()
    lifecycle.cancel(b, NOW, "first")
    with pytest.raises(lifecycle.InvalidTransition):
        lifecycle.cancel(b, datetime(2026, 7, 1, tzinfo=timezone.utc), "second")
    assert b.cancelled_at == NOW
    assert b.cancellation_reason == "first"


def test_cancelled_booking_cannot_become_paid():
    b = booking(status="cancelled", payment_status="pending")
    with pytest.raises(lifecycle.InvalidTransition, match="cannot be marked as paid"):
        lifecycle.change_payment_status(b, PaymentStatus.PAID)


def test_failed_payment_retry_on_confirmed_booking():
    b = booking(status="confirmed", payment_status="failed")
    lifecycle.change_payment_status(b, PaymentStatus.PENDING)
    assert b.payment_status == "pending"
    assert b.status == "confirmed"


@pytest.mark.parametrize("status,editable", [
    ("pending", True), ("confirmed", True), ("cancelled", False), ("completed", False),
])
def test_is_editable(status, editable):
    assert lifecycle.is_editable(status) is editable


def test_nights_and_price_per_night():
    check_in = datetime(2026, 6, 1, tzinfo=timezone.utc)
    check_out = datetime(2026, 6, 5, tzinfo=timezone.utc)
    assert nights(check_in, check_out) == 4
    assert price_per_night(400, check_in, check_out) == 100


def test_partial_day_rounds_up():
    check_in = datetime(2026, 6, 1, 14, tzinfo=timezone.utc)
    check_out = datetime(2026, 6, 3, 10, tzinfo=timezone.utc)
    assert nights(check_in, check_out) == 2


def test_overlap_is_half_open():
    a = (datetime(2026, 6, 1, tzinfo=timezone.utc), datetime(2026, 6, 5, tzinfo=timezone.utc))
    touching = (datetime(2026, 6, 5, tzinfo=timezone.utc), datetime(2026, 6, 7, tzinfo=timezone.utc))
    inside = (datetime(2026, 6, 3, tzinfo=timezone.utc), datetime(2026, 6, 6, tzinfo=timezone.utc))
    assert not overlaps(*a, *touching)
    assert overlaps(*a, *inside)
    assert overlaps(*inside, *a)
