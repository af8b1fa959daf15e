"""
Pydantic schemas for booking-related request/response validation.

Range rules (guests, price, date order, property XOR tour) are checked by
the booking service so they surface as 400 with a specific message.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field

from staybook.domain.enums import BookingStatus, ListingKind, PaymentStatus
from staybook.schemas.listing import ListingSummary
from staybook.schemas.user import AccountSummary


class BookingCreate(BaseModel):
    property_id: Optional[int] = None
    tour_package_id: Optional[int] = None
    check_in: datetime
    check_out: datetime
    guests: int
    total_price: float = Field(..., allow_inf_nan=False)
    payment_details: Optional[str] = Field(None, max_length=500)


class BookingUpdate(BaseModel):
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    guests: Optional[int] = None
    payment_details: Optional[str] = Field(None, max_length=500)
    removed_payment_images: list[str] = Field(default_factory=list)

    def touches_schedule(self) -> bool:
        return any(v is not None for v in (self.check_in, self.check_out, self.guests))


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class BookingResponse(BaseModel):
    id: int
    user_id: int
    property_id: Optional[int]
    tour_package_id: Optional[int]
    listing_kind: ListingKind
    check_in: datetime
    check_out: datetime
    guests: int
    total_price: float
    status: BookingStatus
    payment_status: PaymentStatus
    payment_details: Optional[str]
    payment_images: list[str]
    cancellation_reason: Optional[str]
    cancelled_at: Optional[datetime]
    nights: int
    price_per_night: float
    user: Optional[AccountSummary] = None
    listing: Optional[ListingSummary] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingEnvelope(BaseModel):
    message: str
    booking: BookingResponse


class Pagination(BaseModel):
    current: int
    total: int
    total_bookings: int
    has_next: bool
    has_prev: bool


class BookingListEnvelope(BaseModel):
    message: str
    total: int
    bookings: list[BookingResponse]
    pagination: Optional[Pagination] = None


class BookingFilters(BaseModel):
    date_from: date
    date_to: date
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    kind: Optional[ListingKind] = None


class BookingFilterEnvelope(BaseModel):
    message: str
    filters: BookingFilters
    total: int
    bookings: list[BookingResponse]


class BookingSummary(BaseModel):
    total_bookings: int
    status: dict[str, int]
    payments: dict[str, int]


class BookingSummaryEnvelope(BaseModel):
    message: str
    summary: BookingSummary


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
    status: BookingStatus
    payment_status: PaymentStatus
