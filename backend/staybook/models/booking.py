"""
Booking model: a user's stay at a property or seat on a tour.

Key design decisions:
- Exactly one of property_id / tour_package_id is set (CHECK constraint, plus
  a before-flush guard so the error surfaces before the round trip)
- check_out > check_in enforced by the database
- Status changes never delete the row; cancellation is a state
- nights / price_per_night are derived, never stored
"""

from sqlalchemy import JSON, CheckConstraint, Column, Float, ForeignKey, Index, Integer, String, event
from sqlalchemy.orm import relationship

from staybook.db.base import Base, TimestampMixin, UTCDateTime
from staybook.domain import periods
from staybook.domain.enums import BookingStatus, ListingKind, PaymentStatus


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("listings.id"), nullable=True, index=True)
    tour_package_id = Column(Integer, ForeignKey("listings.id"), nullable=True, index=True)
    check_in = Column(UTCDateTime(), nullable=False)
    check_out = Column(UTCDateTime(), nullable=False)
    guests = Column(Integer, nullable=False)
    total_price = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_details = Column(String(500), nullable=True)
    payment_images = Column(JSON, nullable=False, default=list)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)

    # Relationships
    user = relationship("Account", lazy="selectin")
    property_listing = relationship("Property", foreign_keys=[property_id], lazy="selectin")
    tour_package = relationship("TourPackage", foreign_keys=[tour_package_id], lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "(property_id IS NULL AND tour_package_id IS NOT NULL) OR "
            "(property_id IS NOT NULL AND tour_package_id IS NULL)",
            name="check_booking_single_listing",
        ),
        CheckConstraint("check_out > check_in", name="check_booking_dates"),
        CheckConstraint("guests >= 1 AND guests <= 20", name="check_booking_guests"),
        CheckConstraint("total_price >= 0", name="check_booking_total_price"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name="check_booking_payment_status",
        ),
        # Covers the availability query: active bookings on a listing by range
        Index("ix_bookings_property_range", "property_id", "status", "check_in", "check_out"),
        Index("ix_bookings_tour_range", "tour_package_id", "status", "check_in", "check_out"),
    )

    @property
    def listing_id(self) -> int | None:
        return self.property_id if self.property_id is not None else self.tour_package_id

    @property
    def listing_kind(self) -> ListingKind:
        return ListingKind.PROPERTY if self.property_id is not None else ListingKind.TOUR

    @property
    def listing(self):
        return self.property_listing if self.property_id is not None else self.tour_package

    @property
    def nights(self) -> int:
        return periods.nights(self.check_in, self.check_out)

    @property
    def price_per_night(self) -> float:
        return periods.price_per_night(self.total_price, self.check_in, self.check_out)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, listing={self.listing_id}, status={self.status})>"


@event.listens_for(Booking, "before_insert")
@event.listens_for(Booking, "before_update")
def _validate_booking(mapper, connection, target: Booking) -> None:
    if (target.property_id is None) == (target.tour_package_id is None):
        raise ValueError("Booking must reference exactly one property or tour package")
    if target.check_out <= target.check_in:
        raise ValueError("Check-out date must be after check-in date")
