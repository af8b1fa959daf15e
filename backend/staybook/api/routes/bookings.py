"""
Booking endpoints with concurrency-safe reservation.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.api.deps import get_current_account, get_image_store, get_outbox, require_roles
from staybook.db.session import get_db
from staybook.db.base import utcnow
from staybook.domain.enums import BookingStatus, ListingKind, PaymentStatus, Role
from staybook.infrastructure import ImageStore
from staybook.models.account import Account
from staybook.schemas.booking import (
    BookingCancelResponse,
    BookingCreate,
    BookingEnvelope,
    BookingFilterEnvelope,
    BookingFilters,
    BookingListEnvelope,
    BookingStatusUpdate,
    BookingSummaryEnvelope,
    BookingUpdate,
    Pagination,
    PaymentStatusUpdate,
)
from staybook.services import booking_service, report_service
from staybook.services.outbox import SideEffectOutbox
from staybook.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])

host_or_admin = require_roles(Role.HOST, Role.ADMIN)


@router.post("/", response_model=BookingEnvelope, status_code=status.HTTP_201_CREATED)
async def create_booking(
    check_in: datetime = Form(...),
    check_out: datetime = Form(...),
    guests: int = Form(...),
    total_price: float = Form(...),
    property_id: Optional[int] = Form(None),
    tour_package_id: Optional[int] = Form(None),
    payment_details: Optional[str] = Form(None),
    payment_images: Optional[list[UploadFile]] = File(None),
    requester: Account = Depends(require_roles(Role.USER)),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
    image_store: ImageStore = Depends(get_image_store),
):
    """
    Book a property or a tour package (multipart, optional payment proofs).

    The listing's version is claimed in the same transaction as the insert;
    a concurrent booking for overlapping dates loses the race, re-checks
    availability and is rejected with 400.
    """
    try:
        data = BookingCreate(
            property_id=property_id,
            tour_package_id=tour_package_id,
            check_in=check_in,
            check_out=check_out,
            guests=guests,
            total_price=total_price,
            payment_details=payment_details,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    booking = await booking_service.create_booking(
        db, outbox, image_store, requester, data, payment_images
    )
    return BookingEnvelope(message="Booking created successfully", booking=booking)


@router.get("/", response_model=BookingListEnvelope)
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Own bookings for users, bookings on own listings for hosts, all for admins."""
    bookings, total = await booking_service.list_bookings(db, principal, page, limit)
    pages = (total + limit - 1) // limit
    return BookingListEnvelope(
        message="Bookings fetched successfully",
        total=len(bookings),
        bookings=bookings,
        pagination=Pagination(
            current=page,
            total=pages,
            total_bookings=total,
            has_next=page < pages,
            has_prev=page > 1,
        ),
    )


@router.get("/filter", response_model=BookingFilterEnvelope)
async def filter_bookings(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    kind: Optional[ListingKind] = None,
    principal: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    filters = BookingFilters(
        date_from=date_from,
        date_to=date_to,
        status=booking_status,
        payment_status=payment_status,
        kind=kind,
    )
    bookings = await booking_service.filter_bookings(db, principal, filters)
    return BookingFilterEnvelope(
        message="Filtered bookings fetched successfully",
        filters=filters,
        total=len(bookings),
        bookings=bookings,
    )


@router.get("/summary", response_model=BookingSummaryEnvelope)
async def booking_summary(
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
):
    summary = await booking_service.summarize_bookings(db, principal)
    return BookingSummaryEnvelope(message="Booking summary fetched successfully", summary=summary)


@router.get("/export/csv")
async def export_bookings_csv(
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    kind: Optional[ListingKind] = None,
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
):
    content = await report_service.export_bookings_csv(
        db, principal, date_from, date_to, booking_status, payment_status, kind
    )
    filename = f"bookings-{utcnow():%Y%m%d}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{booking_id}", response_model=BookingEnvelope)
async def get_booking(
    booking_id: int,
    principal: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.get_booking(db, principal, booking_id)
    return BookingEnvelope(message="Booking fetched successfully", booking=booking)


@router.patch("/{booking_id}", response_model=BookingEnvelope)
async def update_booking(
    booking_id: int,
    check_in: Optional[datetime] = Form(None),
    check_out: Optional[datetime] = Form(None),
    guests: Optional[int] = Form(None),
    payment_details: Optional[str] = Form(None),
    removed_payment_images: Optional[list[str]] = Form(None),
    payment_images: Optional[list[UploadFile]] = File(None),
    principal: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
    image_store: ImageStore = Depends(get_image_store),
):
    """Requester edits: dates, guests, payment note and payment proofs."""
    try:
        patch = BookingUpdate(
            check_in=check_in,
            check_out=check_out,
            guests=guests,
            payment_details=payment_details,
            removed_payment_images=removed_payment_images or [],
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    booking = await booking_service.update_booking_by_requester(
        db, outbox, image_store, booking_id, principal, patch, payment_images
    )
    return BookingEnvelope(message="Booking updated successfully", booking=booking)


@router.patch("/{booking_id}/status", response_model=BookingEnvelope)
async def update_booking_status(
    booking_id: int,
    body: BookingStatusUpdate,
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
):
    booking = await booking_service.update_status_by_owner(
        db, outbox, booking_id, principal, body.status, body.reason
    )
    return BookingEnvelope(message="Booking status updated successfully", booking=booking)


@router.patch("/{booking_id}/payment-status", response_model=BookingEnvelope)
async def update_booking_payment_status(
    booking_id: int,
    body: PaymentStatusUpdate,
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
):
    """Paying a pending booking confirms it."""
    booking = await booking_service.update_payment_status(
        db, outbox, booking_id, principal, body.payment_status
    )
    return BookingEnvelope(message="Payment status updated successfully", booking=booking)


@router.delete("/{booking_id}", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: int,
    reason: Optional[str] = Query(None, max_length=500),
    principal: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
):
    """Soft delete: the booking is cancelled, refunded if paid, and its proofs removed."""
    booking = await booking_service.cancel_booking_by_requester(
        db, outbox, booking_id, principal, reason
    )
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
        payment_status=booking.payment_status,
    )
