"""
Booking reports for hosts and admins.
"""

import csv
import io
from datetime import date
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.logging import get_logger
from staybook.domain.enums import BookingStatus, ListingKind, PaymentStatus
from staybook.models.account import Account
from staybook.models.booking import Booking
from staybook.services.booking_service import apply_filters, scoped_query

logger = get_logger(__name__)

CSV_COLUMNS = [
    "BookingID", "User", "Email", "Type", "Reference", "City",
    "Guests", "CheckIn", "CheckOut", "Status", "PaymentStatus", "Total",
]


def _row(booking: Booking) -> list:
    user = booking.user
    listing = booking.listing
    return [
        booking.id,
        user.full_name if user else "",
        user.email if user else "",
        "Property" if booking.listing_kind == ListingKind.PROPERTY else "Tour",
        listing.title if listing else "",
        (listing.city or "") if listing else "",
        booking.guests,
        booking.check_in.date().isoformat(),
        booking.check_out.date().isoformat(),
        booking.status,
        booking.payment_status,
        f"{booking.total_price:.2f}",
    ]


async def export_bookings_csv(
    db: AsyncSession,
    principal: Account,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    booking_status: Optional[BookingStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    kind: Optional[ListingKind] = None,
) -> str:
    """Render the principal's bookings as CSV. Raises 404 when nothing matches."""
    query = apply_filters(
        scoped_query(principal),
        date_from=date_from,
        date_to=date_to,
        status=booking_status,
        payment_status=payment_status,
        kind=kind,
    )
    result = await db.execute(query.order_by(Booking.check_in.asc(), Booking.id.asc()))
    bookings = result.scalars().all()

    if not bookings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No bookings found for export",
        )

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for booking in bookings:
        writer.writerow(_row(booking))

    logger.info("bookings_exported", principal_id=principal.id, rows=len(bookings))
    return buffer.getvalue()
