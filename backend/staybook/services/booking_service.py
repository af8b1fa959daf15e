"""
Booking service: lifecycle of a stay at a property or a seat on a tour.

CONCURRENCY STRATEGY: Optimistic Locking with Retry
====================================================

Problem:
  Two users request overlapping dates on the same listing at the same time.
  Both availability checks see an empty calendar, both insert, and the
  listing ends up with two active bookings for the same night.

Solution:
  Every listing carries a `version` column. A write that depends on the
  listing's calendar (a new booking, a date change) runs in one transaction:

  1. Read the listing and its current version
  2. Re-run the availability check
  3. UPDATE listings SET version = version + 1
     WHERE id = :listing_id AND version = :seen_version
  4. If rows_affected == 0, another writer got there first -> rollback,
     re-read, re-check, retry
  5. Insert/update the booking and commit

  The loser of a race therefore re-checks against the winner's committed
  booking and is rejected as a conflict instead of double-booking.

Side effects (emails, remote image deletes) are queued in a
SideEffectOutbox and dispatched only after the commit, so a failed email
never rolls back a booking and a rolled-back booking never sends one.
"""

import time
from datetime import date, datetime, time as dtime, timezone
from typing import Awaitable, Callable, Optional

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.config import get_settings
from staybook.core.logging import get_logger
from staybook.core.metrics import booking_latency, db_retries, record_booking_attempt, record_transition
from staybook.db.base import utcnow
from staybook.domain import lifecycle
from staybook.domain.enums import BookingStatus, ListingKind, PaymentStatus, Role
from staybook.domain.periods import as_utc, start_of_day
from staybook.infrastructure.image_store import ImageStore, upload_images
from staybook.models.account import Account
from staybook.models.booking import Booking
from staybook.models.listing import LISTING_CLASSES, Listing
from staybook.schemas.booking import BookingCreate, BookingFilters, BookingUpdate
from staybook.services import authorization, notifications
from staybook.services.availability_service import claim_listing, is_available
from staybook.services.outbox import SideEffectOutbox

logger = get_logger(__name__)
settings = get_settings()


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _forbidden(detail: str = "Not authorized to access this booking") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


# ---------- validation ----------

def _listing_ref(data: BookingCreate) -> tuple[ListingKind, int]:
    if (data.property_id is None) == (data.tour_package_id is None):
        raise _bad_request("Exactly one of property_id or tour_package_id must be provided")
    if data.property_id is not None:
        return ListingKind.PROPERTY, data.property_id
    return ListingKind.TOUR, data.tour_package_id


def _validate_stay(
    check_in: datetime,
    check_out: datetime,
    now: datetime,
    check_in_changed: bool = True,
) -> tuple[datetime, datetime]:
    """
    Stays are picked by calendar day, so "not in the past" is judged against
    00:00 UTC today: a same-day check-in stays bookable all day. A check-in
    that is not being changed is not re-judged, so a stay already under way
    can still have its check-out moved.
    """
    check_in, check_out = as_utc(check_in), as_utc(check_out)
    if check_in_changed and check_in < start_of_day(now):
        raise _bad_request("Check-in date cannot be in the past")
    if check_out <= check_in:
        raise _bad_request("Check-out date must be after check-in date")
    return check_in, check_out


def _validate_guests(guests: int) -> None:
    if not 1 <= guests <= settings.BOOKING_MAX_GUESTS:
        raise _bad_request(f"Guests must be between 1 and {settings.BOOKING_MAX_GUESTS}")


def _validate_image_count(count: int) -> None:
    if count > settings.MAX_PAYMENT_IMAGES:
        raise _bad_request(f"Maximum {settings.MAX_PAYMENT_IMAGES} payment images allowed")


def _payment_folder() -> str:
    return f"{settings.IMAGE_FOLDER}/payments"


# ---------- loading ----------

async def _load_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Fresh read of a booking with its user and listing."""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


async def _load_listing(db: AsyncSession, kind: ListingKind, listing_id: int) -> Listing:
    listing = await db.get(LISTING_CLASSES[kind], listing_id, populate_existing=True)
    if listing is None:
        label = "Property" if kind == ListingKind.PROPERTY else "Tour package"
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return listing


async def _ensure_available(
    db: AsyncSession,
    listing: Listing,
    check_in: datetime,
    check_out: datetime,
    exclude_booking_id: Optional[int] = None,
) -> None:
    if not await is_available(db, listing.id, check_in, check_out, exclude_booking_id):
        raise _bad_request(f"This {listing.kind} is not available for the selected dates")


async def _write_under_claim(
    db: AsyncSession,
    kind: ListingKind,
    listing_id: int,
    check_in: datetime,
    check_out: datetime,
    write: Callable[[Listing], Awaitable[Booking]],
    exclude_booking_id: Optional[int] = None,
) -> Booking:
    """
    Run `write` in a transaction that has claimed the listing's version.
    Retries up to BOOKING_MAX_RETRIES on version conflicts.
    """
    for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
        listing = await _load_listing(db, kind, listing_id)
        await _ensure_available(db, listing, check_in, check_out, exclude_booking_id)

        if await claim_listing(db, listing):
            booking = await write(listing)
            await db.flush()
            booking_id = booking.id
            await db.commit()
            logger.info("listing_claimed", listing_id=listing_id, booking_id=booking_id, attempt=attempt)
            return booking

        # Version conflict - another transaction wrote to this listing's calendar
        db_retries.inc()
        logger.info(
            "booking_retry",
            listing_id=listing_id,
            attempt=attempt,
            reason="version_conflict",
        )
        await db.rollback()

    raise _bad_request("Booking failed due to high demand. Please try again.")


# ---------- writes ----------

async def create_booking(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    image_store: ImageStore,
    requester: Account,
    data: BookingCreate,
    payment_images: Optional[list[UploadFile]] = None,
) -> Booking:
    """Create a pending booking after validation and an availability check."""
    started = time.perf_counter()
    requester_id = requester.id
    files = payment_images or []
    now = utcnow()

    kind, listing_id = _listing_ref(data)
    check_in, check_out = _validate_stay(data.check_in, data.check_out, now)
    _validate_guests(data.guests)
    if data.total_price <= 0:
        raise _bad_request("Total price must be greater than 0")
    _validate_image_count(len(files))

    listing = await _load_listing(db, kind, listing_id)
    try:
        await _ensure_available(db, listing, check_in, check_out)
    except HTTPException:
        record_booking_attempt("conflict")
        raise

    uploaded = await upload_images(image_store, files, _payment_folder())

    async def write(claimed: Listing) -> Booking:
        booking = Booking(
            user_id=requester_id,
            property_id=claimed.id if kind == ListingKind.PROPERTY else None,
            tour_package_id=claimed.id if kind == ListingKind.TOUR else None,
            check_in=check_in,
            check_out=check_out,
            guests=data.guests,
            total_price=data.total_price,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_details=data.payment_details,
            payment_images=list(uploaded),
        )
        db.add(booking)
        return booking

    try:
        created = await _write_under_claim(db, kind, listing_id, check_in, check_out, write)
    except Exception as e:
        await db.rollback()
        for url in uploaded:
            outbox.enqueue_image_delete(url)
        await outbox.dispatch()
        record_booking_attempt("conflict" if isinstance(e, HTTPException) else "error")
        raise

    booking = await _load_booking(db, created.id)
    subject, html = notifications.booking_created(booking)
    outbox.enqueue_email(booking.user.email if booking.user else None, subject, html)
    await outbox.dispatch()

    record_booking_attempt("success")
    booking_latency.observe(time.perf_counter() - started)
    logger.info(
        "booking_created",
        booking_id=booking.id,
        user_id=requester_id,
        listing_id=listing_id,
        kind=kind.value,
        nights=booking.nights,
        payment_images=len(uploaded),
    )
    return booking


async def _remove_payment_images(
    image_store: ImageStore,
    booking: Booking,
    removed: list[str],
) -> list[str]:
    """
    Delete removed proofs from the store. Returns the images to keep: a
    reference is dropped only when its object is confirmed gone.
    """
    current = list(booking.payment_images or [])
    to_remove = [url for url in removed if url in current]
    unknown = [url for url in removed if url not in current]
    if unknown:
        logger.warning("payment_images_not_on_booking", booking_id=booking.id, urls=unknown)

    kept = [url for url in current if url not in to_remove]
    for url in to_remove:
        try:
            await image_store.delete(url)
        except Exception as e:
            logger.error("payment_image_delete_failed", booking_id=booking.id, url=url, error=str(e))
            kept.append(url)
    return kept


async def update_booking_by_requester(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    image_store: ImageStore,
    booking_id: int,
    requester: Account,
    patch: BookingUpdate,
    payment_images: Optional[list[UploadFile]] = None,
) -> Booking:
    """Edit dates, guests, payment note and payment proofs of a live booking."""
    requester_id = requester.id
    files = payment_images or []
    booking = await _load_booking(db, booking_id)

    if not authorization.can_mutate_as_requester(requester, booking):
        raise _forbidden("Not authorized to update this booking")
    if not lifecycle.is_editable(booking.status):
        raise _bad_request(f"Cannot update a {booking.status} booking")

    current_images = list(booking.payment_images or [])
    removing = [url for url in patch.removed_payment_images if url in current_images]
    _validate_image_count(len(current_images) - len(removing) + len(files))

    kind, listing_id = booking.listing_kind, booking.listing_id
    check_in = as_utc(booking.check_in)
    check_out = as_utc(booking.check_out)
    guests = booking.guests
    if patch.touches_schedule():
        if patch.check_in is not None or patch.check_out is not None:
            check_in, check_out = _validate_stay(
                patch.check_in or check_in,
                patch.check_out or check_out,
                utcnow(),
                check_in_changed=patch.check_in is not None and as_utc(patch.check_in) != as_utc(check_in),
            )
        if patch.guests is not None:
            _validate_guests(patch.guests)
            guests = patch.guests
        await _ensure_available(
            db, await _load_listing(db, kind, listing_id), check_in, check_out, booking.id
        )

    kept = await _remove_payment_images(image_store, booking, patch.removed_payment_images)
    added = await upload_images(image_store, files, _payment_folder())
    images = kept + added
    payment_details = patch.payment_details

    async def write(claimed: Optional[Listing] = None) -> Booking:
        target = await _load_booking(db, booking_id)
        target.check_in = check_in
        target.check_out = check_out
        target.guests = guests
        if payment_details is not None:
            target.payment_details = payment_details
        target.payment_images = images
        return target

    try:
        if patch.touches_schedule():
            await _write_under_claim(
                db, kind, listing_id, check_in, check_out, write, exclude_booking_id=booking_id
            )
        else:
            await write()
            await db.commit()
    except Exception:
        await db.rollback()
        for url in added:
            outbox.enqueue_image_delete(url)
        await outbox.dispatch()
        raise

    booking = await _load_booking(db, booking_id)
    subject, html = notifications.booking_updated(booking)
    outbox.enqueue_email(booking.user.email if booking.user else None, subject, html)
    await outbox.dispatch()

    logger.info(
        "booking_updated",
        booking_id=booking_id,
        user_id=requester_id,
        rescheduled=patch.touches_schedule(),
        images_added=len(added),
        images_removed=len(current_images) - len(kept),
    )
    return booking


async def update_status_by_owner(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    booking_id: int,
    principal: Account,
    new_status: BookingStatus,
    reason: Optional[str] = None,
) -> Booking:
    booking = await _load_booking(db, booking_id)
    if not authorization.can_mutate_as_owner(principal, booking):
        raise _forbidden("Not authorized to update this booking")

    try:
        result = lifecycle.change_status(booking, new_status, utcnow(), reason)
    except lifecycle.InvalidTransition as e:
        raise _bad_request(str(e))

    await db.commit()
    record_transition("status", result.status.value)
    if result.refunded:
        record_transition("payment", PaymentStatus.REFUNDED.value)

    booking = await _load_booking(db, booking_id)
    if result.status == BookingStatus.CANCELLED:
        subject, html = notifications.booking_cancelled(booking, result.refunded)
    else:
        subject, html = notifications.status_changed(
            booking, result.previous_status.value, result.previous_payment_status.value
        )
    outbox.enqueue_email(booking.user.email if booking.user else None, subject, html)
    await outbox.dispatch()

    logger.info(
        "booking_status_changed",
        booking_id=booking_id,
        changed_by=principal.id,
        previous=result.previous_status.value,
        status=result.status.value,
        payment_status=result.payment_status.value,
    )
    return booking


async def update_payment_status(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    booking_id: int,
    principal: Account,
    new_payment_status: PaymentStatus,
) -> Booking:
    booking = await _load_booking(db, booking_id)
    if not authorization.can_mutate_as_owner(principal, booking):
        raise _forbidden("Not authorized to update payment status")

    try:
        result = lifecycle.change_payment_status(booking, new_payment_status)
    except lifecycle.InvalidTransition as e:
        raise _bad_request(str(e))

    await db.commit()
    record_transition("payment", result.payment_status.value)
    if result.auto_confirmed:
        record_transition("status", BookingStatus.CONFIRMED.value)

    booking = await _load_booking(db, booking_id)
    subject, html = notifications.status_changed(
        booking, result.previous_status.value, result.previous_payment_status.value
    )
    outbox.enqueue_email(booking.user.email if booking.user else None, subject, html)
    await outbox.dispatch()

    logger.info(
        "payment_status_changed",
        booking_id=booking_id,
        changed_by=principal.id,
        previous=result.previous_payment_status.value,
        payment_status=result.payment_status.value,
        auto_confirmed=result.auto_confirmed,
    )
    return booking


async def cancel_booking_by_requester(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    booking_id: int,
    requester: Account,
    reason: Optional[str] = None,
) -> Booking:
    """Soft delete: the booking is cancelled and its payment proofs removed."""
    booking = await _load_booking(db, booking_id)
    if not authorization.can_mutate_as_requester(requester, booking):
        raise _forbidden("Not authorized to cancel this booking")

    try:
        result = lifecycle.cancel(booking, utcnow(), reason or "Cancelled by user")
    except lifecycle.InvalidTransition as e:
        raise _bad_request(str(e))

    proofs = list(booking.payment_images or [])
    booking.payment_images = []
    await db.commit()
    record_transition("status", BookingStatus.CANCELLED.value)
    if result.refunded:
        record_transition("payment", PaymentStatus.REFUNDED.value)

    booking = await _load_booking(db, booking_id)
    for url in proofs:
        outbox.enqueue_image_delete(url)
    subject, html = notifications.booking_cancelled(booking, result.refunded)
    outbox.enqueue_email(booking.user.email if booking.user else None, subject, html)
    await outbox.dispatch()

    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        cancelled_by=requester.id,
        refunded=result.refunded,
        images_removed=len(proofs),
    )
    return booking


# ---------- reads ----------

def _hosted_listing_ids(host_id: int):
    return select(Listing.id).where(Listing.host_id == host_id)


def scoped_query(principal: Account):
    """Bookings visible to the principal: own, on own listings, or all."""
    query = select(Booking)
    if principal.role == Role.ADMIN.value:
        return query
    if principal.role == Role.HOST.value:
        hosted = _hosted_listing_ids(principal.id)
        return query.where(
            or_(Booking.property_id.in_(hosted), Booking.tour_package_id.in_(hosted))
        )
    return query.where(Booking.user_id == principal.id)


async def get_booking(db: AsyncSession, principal: Account, booking_id: int) -> Booking:
    booking = await _load_booking(db, booking_id)
    if not authorization.can_access(principal, booking):
        raise _forbidden()
    return booking


async def list_bookings(
    db: AsyncSession,
    principal: Account,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Booking], int]:
    """Newest first, paginated. Returns (bookings, total)."""
    query = scoped_query(principal)
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()

    result = await db.execute(
        query.order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


def _day_start(day: date) -> datetime:
    return datetime.combine(day, dtime.min, tzinfo=timezone.utc)


def _day_end(day: date) -> datetime:
    return datetime.combine(day, dtime.max, tzinfo=timezone.utc)


def apply_filters(
    query,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[BookingStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    kind: Optional[ListingKind] = None,
):
    """Narrow a booking query to stays entirely inside [date_from, date_to]."""
    if date_from is not None and date_to is not None and date_to < date_from:
        raise _bad_request("End date must not be before start date")

    if date_from is not None:
        query = query.where(Booking.check_in >= _day_start(date_from))
    if date_to is not None:
        query = query.where(Booking.check_out <= _day_end(date_to))
    if status is not None:
        query = query.where(Booking.status == BookingStatus(status).value)
    if payment_status is not None:
        query = query.where(Booking.payment_status == PaymentStatus(payment_status).value)
    if kind == ListingKind.PROPERTY:
        query = query.where(Booking.property_id.is_not(None))
    elif kind == ListingKind.TOUR:
        query = query.where(Booking.tour_package_id.is_not(None))
    return query


async def filter_bookings(
    db: AsyncSession,
    principal: Account,
    filters: BookingFilters,
) -> list[Booking]:
    query = apply_filters(scoped_query(principal), **filters.model_dump())
    result = await db.execute(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
    return list(result.scalars().all())


async def summarize_bookings(db: AsyncSession, principal: Account) -> dict:
    scoped = scoped_query(principal).subquery()

    status_rows = await db.execute(
        select(scoped.c.status, func.count()).group_by(scoped.c.status)
    )
    payment_rows = await db.execute(
        select(scoped.c.payment_status, func.count()).group_by(scoped.c.payment_status)
    )

    by_status = {s.value: 0 for s in BookingStatus}
    by_status.update({row[0]: row[1] for row in status_rows.all()})
    by_payment = {s.value: 0 for s in PaymentStatus}
    by_payment.update({row[0]: row[1] for row in payment_rows.all()})

    return {
        "total_bookings": sum(by_status.values()),
        "status": by_status,
        "payments": by_payment,
    }
