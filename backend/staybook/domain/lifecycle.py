"""
Booking lifecycle rules.

Two loosely coupled state machines live on a booking:

    status:          pending -> confirmed | cancelled
                     confirmed -> cancelled | completed
                     cancelled, completed: terminal

    payment_status:  pending -> paid | failed
                     failed -> pending            (retry)
                     paid -> refunded             (only via cancellation)
                     refunded: terminal

Coupling rules applied on every transition:
- payment becomes paid while the booking is pending -> booking is confirmed
- booking becomes cancelled while payment is paid -> payment is refunded

Functions here mutate any object exposing ``status``, ``payment_status``,
``cancellation_reason`` and ``cancelled_at``; they never touch storage.
"""

from dataclasses import dataclass
from datetime import datetime

from staybook.domain.enums import BookingStatus, PaymentStatus

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

# Manual payment changes. PAID -> REFUNDED is deliberately absent: refunds
# only happen through cancel().
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


class InvalidTransition(ValueError):
    """Raised when a requested state change is not allowed."""


@dataclass
class TransitionResult:
    previous_status: BookingStatus
    previous_payment_status: PaymentStatus
    status: BookingStatus
    payment_status: PaymentStatus

    @property
    def refunded(self) -> bool:
        return (
            self.previous_payment_status == PaymentStatus.PAID
            and self.payment_status == PaymentStatus.REFUNDED
        )

    @property
    def auto_confirmed(self) -> bool:
        return (
            self.previous_status == BookingStatus.PENDING
            and self.status == BookingStatus.CONFIRMED
            and self.payment_status == PaymentStatus.PAID
        )


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS[BookingStatus(current)]


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS[PaymentStatus(current)]


def is_editable(status: BookingStatus) -> bool:
    """Requester edits are only accepted while the booking is still live."""
    return BookingStatus(status) not in TERMINAL_STATUSES


def _snapshot(booking) -> tuple[BookingStatus, PaymentStatus]:
    return BookingStatus(booking.status), PaymentStatus(booking.payment_status)


def _result(booking, previous: tuple[BookingStatus, PaymentStatus]) -> TransitionResult:
    status, payment_status = _snapshot(booking)
    return TransitionResult(previous[0], previous[1], status, payment_status)


def cancel(booking, now: datetime, reason: str | None = None) -> TransitionResult:
    """Cancel a booking, refunding a paid one."""
    previous = _snapshot(booking)
    if not can_transition(previous[0], BookingStatus.CANCELLED):
        raise InvalidTransition(f"Booking is already {previous[0].value} and cannot be cancelled")

    booking.status = BookingStatus.CANCELLED.value
    booking.cancelled_at = now
    if reason:
        booking.cancellation_reason = reason
    if previous[1] == PaymentStatus.PAID:
        booking.payment_status = PaymentStatus.REFUNDED.value
    return _result(booking, previous)


def change_status(
    booking,
    target: BookingStatus,
    now: datetime,
    reason: str | None = None,
) -> TransitionResult:
    target = BookingStatus(target)
    if target == BookingStatus.CANCELLED:
        return cancel(booking, now, reason)

    previous = _snapshot(booking)
    if not can_transition(previous[0], target):
        raise InvalidTransition(
            f"Cannot change booking status from {previous[0].value} to {target.value}"
        )
    booking.status = target.value
    return _result(booking, previous)


def change_payment_status(booking, target: PaymentStatus) -> TransitionResult:
    target = PaymentStatus(target)
    previous = _snapshot(booking)

    if previous[0] == BookingStatus.CANCELLED and target == PaymentStatus.PAID:
        raise InvalidTransition("A cancelled booking cannot be marked as paid")
    if not can_transition_payment(previous[1], target):
        raise InvalidTransition(
            f"Cannot change payment status from {previous[1].value} to {target.value}"
        )

    booking.payment_status = target.value
    if target == PaymentStatus.PAID and previous[0] == BookingStatus.PENDING:
        booking.status = BookingStatus.CONFIRMED.value
    return _result(booking, previous)
