"""
Listing models: one table, two bookable kinds.

Key design decisions:
- Single-table inheritance on `kind`: Property and TourPackage share id space,
  ownership, status, images and the optimistic-lock `version`.
- `version` is bumped by every booking write against the listing; a bump that
  matches zero rows means a concurrent booking won the race.
- `image_urls` must never be empty; enforced in the service layer before any
  remote delete happens.
"""

from sqlalchemy import JSON, CheckConstraint, Column, Float, ForeignKey, Index, Integer, String

from staybook.db.base import Base, TimestampMixin
from staybook.domain.enums import ListingKind, PropertyStatus, TourPackageStatus


class Listing(Base, TimestampMixin):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(20), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=False)
    status = Column(String(20), nullable=False)
    host_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    image_urls = Column(JSON, nullable=False, default=list)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    # Property columns
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True, index=True)
    price_per_night = Column(Float, nullable=True)
    amenities = Column(JSON, nullable=True)

    # Tour package columns
    price = Column(Float, nullable=True)
    duration = Column(String(100), nullable=True)

    __mapper_args__ = {"polymorphic_on": kind}

    __table_args__ = (
        CheckConstraint("kind IN ('property', 'tour')", name="check_listing_kind"),
        CheckConstraint("price_per_night IS NULL OR price_per_night >= 0", name="check_listing_nightly_price"),
        CheckConstraint("price IS NULL OR price >= 0", name="check_listing_price"),
        Index("ix_listings_kind_status", "kind", "status"),
    )

    @property
    def listing_kind(self) -> ListingKind:
        return ListingKind(self.kind)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, title={self.title}, status={self.status})>"


class Property(Listing):
    __mapper_args__ = {"polymorphic_identity": ListingKind.PROPERTY.value}

    def __init__(self, **kwargs):
        kwargs.setdefault("status", PropertyStatus.AVAILABLE.value)
        kwargs.setdefault("amenities", [])
        super().__init__(**kwargs)


class TourPackage(Listing):
    __mapper_args__ = {"polymorphic_identity": ListingKind.TOUR.value}

    def __init__(self, **kwargs):
        kwargs.setdefault("status", TourPackageStatus.AVAILABLE.value)
        super().__init__(**kwargs)


LISTING_CLASSES = {
    ListingKind.PROPERTY: Property,
    ListingKind.TOUR: TourPackage,
}
