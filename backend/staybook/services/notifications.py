"""
Email bodies for booking events. Every builder returns (subject, html).
"""

from html import escape

from staybook.core.config import get_settings
from staybook.models.booking import Booking

settings = get_settings()


def _fmt(value) -> str:
    return value.strftime("%Y-%m-%d")


def _title(booking: Booking) -> str:
    listing = booking.listing
    return escape(listing.title) if listing is not None else "your booking"


def _greeting(booking: Booking) -> str:
    name = booking.user.first_name if booking.user is not None else ""
    return f"<p>Hello {escape(name)},</p>"


def _subject(text: str) -> str:
    return f"{text} - {settings.APP_NAME}"


def booking_created(booking: Booking) -> tuple[str, str]:
    html = (
        "<h2>Booking received</h2>"
        f"{_greeting(booking)}"
        f"<p>Your booking for <strong>{_title(booking)}</strong> from "
        f"<strong>{_fmt(booking.check_in)}</strong> to <strong>{_fmt(booking.check_out)}</strong> "
        "has been received and is awaiting payment verification.</p>"
        f"<p>Guests: {booking.guests}</p>"
        f"<p>Total price: ${booking.total_price:.2f}</p>"
    )
    return _subject("Booking Confirmation"), html


def booking_updated(booking: Booking) -> tuple[str, str]:
    html = (
        "<h2>Booking updated</h2>"
        f"{_greeting(booking)}"
        f"<p>Dates: <strong>{_fmt(booking.check_in)}</strong> to <strong>{_fmt(booking.check_out)}</strong></p>"
        f"<p>Guests: {booking.guests}</p>"
        f"<p>Status: <strong>{booking.status}</strong></p>"
    )
    return _subject("Booking Updated"), html


def status_changed(booking: Booking, previous_status: str, previous_payment_status: str) -> tuple[str, str]:
    html = (
        "<h2>Booking status changed</h2>"
        f"{_greeting(booking)}"
        f"<p>Your booking for <strong>{_title(booking)}</strong> has been updated.</p>"
        f"<p>Status: {previous_status} &rarr; <strong>{booking.status}</strong></p>"
        f"<p>Payment: {previous_payment_status} &rarr; <strong>{booking.payment_status}</strong></p>"
    )
    if booking.cancellation_reason and booking.status == "cancelled":
        html += f"<p>Reason: {escape(booking.cancellation_reason)}</p>"
    return _subject("Booking Update"), html


def booking_cancelled(booking: Booking, refunded: bool) -> tuple[str, str]:
    html = (
        "<h2>Booking cancelled</h2>"
        f"{_greeting(booking)}"
        f"<p>Your booking for <strong>{_title(booking)}</strong> from "
        f"<strong>{_fmt(booking.check_in)}</strong> to <strong>{_fmt(booking.check_out)}</strong> "
        "has been cancelled.</p>"
    )
    if refunded:
        html += f"<p>Your payment of ${booking.total_price:.2f} will be refunded.</p>"
    html += "<p>If you have any questions, please contact us.</p>"
    return _subject("Booking Cancelled"), html
