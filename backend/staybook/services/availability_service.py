"""
Availability checks for listings.

A listing is available for [check_in, check_out) when its status is
`available` and no pending or confirmed booking on it overlaps that range:
existing [b_in, b_out) overlaps iff b_in < check_out AND b_out > check_in.
Cancelled and completed bookings never block.

Storage errors fail closed: a broken lookup reports "not available" so an
infrastructure fault can never let a conflicting booking through.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.logging import get_logger
from staybook.domain.enums import ACTIVE_BOOKING_STATUSES, ListingKind
from staybook.domain.periods import as_utc
from staybook.models.booking import Booking
from staybook.models.listing import Listing

logger = get_logger(__name__)

AVAILABLE = "available"


def _listing_column(kind: ListingKind):
    return Booking.property_id if kind == ListingKind.PROPERTY else Booking.tour_package_id


def _active_overlap_query(listing: Listing, check_in: datetime, check_out: datetime):
    return select(Booking.id, Booking.check_in, Booking.check_out).where(
        _listing_column(listing.listing_kind) == listing.id,
        Booking.status.in_([s.value for s in ACTIVE_BOOKING_STATUSES]),
        Booking.check_in < check_out,
        Booking.check_out > check_in,
    )


async def find_conflicts(
    db: AsyncSession,
    listing: Listing,
    check_in: datetime,
    check_out: datetime,
    exclude_booking_id: int | None = None,
) -> list:
    """Rows of (id, check_in, check_out) for active bookings overlapping the range."""
    query = _active_overlap_query(listing, as_utc(check_in), as_utc(check_out))
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    result = await db.execute(query)
    return list(result.all())


async def is_available(
    db: AsyncSession,
    listing_id: int,
    check_in: datetime,
    check_out: datetime,
    exclude_booking_id: int | None = None,
) -> bool:
    try:
        listing = await db.get(Listing, listing_id)
        if listing is None or listing.status != AVAILABLE:
            return False

        conflicts = await find_conflicts(db, listing, check_in, check_out, exclude_booking_id)
    except SQLAlchemyError as e:
        logger.error("availability_check_failed", listing_id=listing_id, error=str(e))
        return False

    if conflicts:
        logger.info(
            "availability_conflict",
            listing_id=listing_id,
            conflicting_bookings=[row.id for row in conflicts],
        )
    return not conflicts


async def get_unavailable_ranges(
    db: AsyncSession,
    listing_id: int,
    start: datetime,
    end: datetime,
) -> list[tuple[datetime, datetime]]:
    """Date ranges already held by active bookings inside [start, end)."""
    try:
        listing = await db.get(Listing, listing_id)
        if listing is None:
            return []
        conflicts = await find_conflicts(db, listing, start, end)
    except SQLAlchemyError as e:
        logger.error("unavailable_ranges_failed", listing_id=listing_id, error=str(e))
        return []

    return sorted((row.check_in, row.check_out) for row in conflicts)


async def claim_listing(db: AsyncSession, listing: Listing) -> bool:
    """
    Compare-and-swap on the listing's version.

    UPDATE listings SET version = version + 1 WHERE id = :id AND version = :seen

    Every write that depends on the listing's booking calendar claims the
    listing in its own transaction. Two writers that read the same version
    cannot both succeed: the loser sees rowcount == 0 and must roll back,
    re-read and re-check before trying again.
    """
    result = await db.execute(
        update(Listing)
        .where(Listing.id == listing.id, Listing.version == listing.version)
        .values(version=Listing.version + 1)
    )
    return result.rowcount == 1
