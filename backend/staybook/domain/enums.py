"""
Closed enumerations for every status-like concept in the marketplace.

Values are the strings stored in the database and exchanged over the API.
"""

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    HOST = "host"
    USER = "user"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"
    PENDING_VERIFICATION = "pending_verification"


class ListingKind(str, Enum):
    PROPERTY = "property"
    TOUR = "tour"


class PropertyStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    CANCELLED = "cancelled"
    CONFIRMED = "confirmed"
    INACTIVE = "inactive"


class TourPackageStatus(str, Enum):
    AVAILABLE = "available"
    SOLD_OUT = "sold_out"
    CANCELLED = "cancelled"
    UPCOMING = "upcoming"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# Bookings in these states hold their dates against the listing.
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

LISTING_STATUSES = {
    ListingKind.PROPERTY: PropertyStatus,
    ListingKind.TOUR: TourPackageStatus,
}


def listing_status_values(kind: ListingKind) -> set[str]:
    return {status.value for status in LISTING_STATUSES[kind]}
