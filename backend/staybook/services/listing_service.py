"""
Listing service: properties and tour packages owned by hosts.

Both kinds go through the same code paths; only the kind-specific fields
differ. Every mutation invalidates the public listing cache, and every
remote image removal happens before the reference is dropped so a listing
never points at fewer than one image.
"""

from datetime import datetime
from typing import Optional

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.config import get_settings
from staybook.core.logging import get_logger
from staybook.domain.enums import (
    ACTIVE_BOOKING_STATUSES,
    ListingKind,
    PropertyStatus,
    Role,
    TourPackageStatus,
    listing_status_values,
)
from staybook.domain.periods import as_utc
from staybook.infrastructure.image_store import ImageStore, upload_images
from staybook.models.account import Account
from staybook.models.booking import Booking
from staybook.models.listing import LISTING_CLASSES, Listing
from staybook.schemas.listing import ListingCreate, ListingResponse, ListingUpdate
from staybook.services import authorization
from staybook.services.availability_service import claim_listing, get_unavailable_ranges, is_available
from staybook.services.cache_service import get_cached_listings, invalidate_listing_cache, set_cached_listings
from staybook.services.outbox import SideEffectOutbox

logger = get_logger(__name__)
settings = get_settings()

PROPERTY_FIELDS = ("address", "city", "price_per_night", "amenities")
TOUR_FIELDS = ("price", "duration")
KIND_FIELDS = {
    ListingKind.PROPERTY: PROPERTY_FIELDS,
    ListingKind.TOUR: TOUR_FIELDS,
}


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _listing_folder(kind: ListingKind) -> str:
    return f"{settings.IMAGE_FOLDER}/{'properties' if kind == ListingKind.PROPERTY else 'tours'}"


def _validate_kind_fields(kind: ListingKind, values: dict, creating: bool) -> None:
    """Required/forbidden fields per kind, shared by create and update."""
    foreign = [
        name for other, fields in KIND_FIELDS.items() if other != kind
        for name in fields if values.get(name) not in (None, [])
    ]
    if foreign:
        raise _bad_request(f"Fields not valid for a {kind.value}: {', '.join(foreign)}")

    if kind == ListingKind.PROPERTY:
        required = ("address", "city", "price_per_night")
        price_field = "price_per_night"
    else:
        required = ("price", "duration")
        price_field = "price"

    if creating:
        missing = [name for name in required if values.get(name) in (None, "")]
        if missing:
            raise _bad_request(f"Missing required fields: {', '.join(missing)}")

    price = values.get(price_field)
    if price is not None and price <= 0:
        raise _bad_request("Price must be greater than 0")


async def get_listing(db: AsyncSession, listing_id: int) -> Listing:
    listing = await db.get(Listing, listing_id, populate_existing=True)
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
    return listing


async def _managed_listing(db: AsyncSession, principal: Account, listing_id: int) -> Listing:
    listing = await get_listing(db, listing_id)
    if not authorization.can_manage_listing(principal, listing):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to manage this listing",
        )
    return listing


async def _resolve_host(db: AsyncSession, principal: Account, host_id: Optional[int]) -> int:
    """Hosts create for themselves; admins must name the host."""
    if principal.role == Role.HOST.value:
        return principal.id
    if host_id is None:
        raise _bad_request("host_id is required when an admin creates a listing")

    host = await db.get(Account, host_id)
    if host is None or host.role != Role.HOST.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Host not found")
    return host.id


async def create_listing(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    image_store: ImageStore,
    principal: Account,
    data: ListingCreate,
    images: Optional[list[UploadFile]] = None,
) -> Listing:
    files = images or []
    _validate_kind_fields(data.kind, data.model_dump(), creating=True)
    if not files:
        raise _bad_request("At least one image is required")
    if len(files) > settings.MAX_LISTING_IMAGES:
        raise _bad_request(f"Maximum {settings.MAX_LISTING_IMAGES} images allowed")

    host_id = await _resolve_host(db, principal, data.host_id)

    urls = await upload_images(image_store, files, _listing_folder(data.kind))
    if not urls:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload images",
        )

    fields = {name: getattr(data, name) for name in KIND_FIELDS[data.kind]}
    listing = LISTING_CLASSES[data.kind](
        title=data.title,
        description=data.description,
        host_id=host_id,
        image_urls=urls,
        **fields,
    )
    try:
        db.add(listing)
        await db.commit()
    except Exception:
        await db.rollback()
        for url in urls:
            outbox.enqueue_image_delete(url)
        await outbox.dispatch()
        raise

    await invalidate_listing_cache()
    logger.info(
        "listing_created",
        listing_id=listing.id,
        kind=data.kind.value,
        host_id=host_id,
        created_by=principal.id,
        images=len(urls),
    )
    return listing


async def update_listing(
    db: AsyncSession,
    principal: Account,
    listing_id: int,
    patch: ListingUpdate,
) -> Listing:
    listing = await _managed_listing(db, principal, listing_id)
    changes = patch.model_dump(exclude_unset=True)
    kind = listing.listing_kind

    _validate_kind_fields(kind, changes, creating=False)
    if "status" in changes and changes["status"] not in listing_status_values(kind):
        allowed = ", ".join(sorted(listing_status_values(kind)))
        raise _bad_request(f"Invalid status for a {kind.value}. Allowed: {allowed}")
    for name in ("title", "description", "status", *KIND_FIELDS[kind]):
        if name in changes and changes[name] is None:
            raise _bad_request(f"{name} cannot be empty")

    for name, value in changes.items():
        setattr(listing, name, value)
    await db.commit()
    await invalidate_listing_cache()

    logger.info("listing_updated", listing_id=listing_id, updated_by=principal.id, fields=sorted(changes))
    return listing


async def add_images(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    image_store: ImageStore,
    principal: Account,
    listing_id: int,
    images: list[UploadFile],
) -> Listing:
    listing = await _managed_listing(db, principal, listing_id)
    if not images:
        raise _bad_request("No images provided")
    current = list(listing.image_urls or [])
    if len(current) + len(images) > settings.MAX_LISTING_IMAGES:
        raise _bad_request(f"Maximum {settings.MAX_LISTING_IMAGES} images allowed")

    urls = await upload_images(image_store, images, _listing_folder(listing.listing_kind))
    if not urls:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload images",
        )

    listing.image_urls = current + urls
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        for url in urls:
            outbox.enqueue_image_delete(url)
        await outbox.dispatch()
        raise

    await invalidate_listing_cache()
    logger.info("listing_images_added", listing_id=listing_id, added=len(urls))
    return listing


async def remove_images(
    db: AsyncSession,
    image_store: ImageStore,
    principal: Account,
    listing_id: int,
    urls: list[str],
) -> Listing:
    """Remove images, never leaving the listing without one."""
    listing = await _managed_listing(db, principal, listing_id)
    current = list(listing.image_urls or [])

    unknown = [url for url in urls if url not in current]
    if unknown:
        raise _bad_request(f"Images not found on this listing: {', '.join(unknown)}")
    remaining = [url for url in current if url not in urls]
    if not remaining:
        raise _bad_request("A listing must keep at least one image")

    failed = []
    for url in dict.fromkeys(urls):
        try:
            await image_store.delete(url)
        except Exception as e:
            logger.error("listing_image_delete_failed", listing_id=listing_id, url=url, error=str(e))
            failed.append(url)

    listing.image_urls = [url for url in current if url in remaining or url in failed]
    await db.commit()
    await invalidate_listing_cache()

    logger.info("listing_images_removed", listing_id=listing_id, removed=len(urls) - len(failed), failed=len(failed))
    return listing


ACTIVE_BOOKINGS_MESSAGE = "Cannot delete a listing with pending or confirmed bookings"

# Where a listing with booking history goes instead of being deleted
CLOSED_STATUS = {
    ListingKind.PROPERTY: PropertyStatus.INACTIVE.value,
    ListingKind.TOUR: TourPackageStatus.CANCELLED.value,
}


async def _count_active(db: AsyncSession, column, listing_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Booking).where(
            column == listing_id,
            Booking.status.in_([s.value for s in ACTIVE_BOOKING_STATUSES]),
        )
    )
    return result.scalar_one()


async def delete_listing(
    db: AsyncSession,
    outbox: SideEffectOutbox,
    principal: Account,
    listing_id: int,
) -> bool:
    """
    Remove a listing with no active bookings. Returns True when the row was
    deleted, False when it was deactivated instead.

    A listing without any bookings is hard deleted and its images are removed
    after commit. A listing with booking history keeps its row, its images and
    every booking so requesters still see their records; it only leaves the
    public feed by moving to the kind's closed status.
    """
    listing = await _managed_listing(db, principal, listing_id)
    column = Booking.property_id if listing.listing_kind == ListingKind.PROPERTY else Booking.tour_package_id

    if await _count_active(db, column, listing_id):
        raise _bad_request(ACTIVE_BOOKINGS_MESSAGE)

    # Claim the listing so a booking racing this delete either lands first
    # (and is seen by the re-count) or finds the listing gone.
    if not await claim_listing(db, listing) or await _count_active(db, column, listing_id):
        await db.rollback()
        raise _bad_request(ACTIVE_BOOKINGS_MESSAGE)

    history = (await db.execute(select(func.count()).select_from(Booking).where(column == listing_id))).scalar_one()
    if history:
        listing.status = CLOSED_STATUS[listing.listing_kind]
        await db.commit()
        await invalidate_listing_cache()
        logger.info(
            "listing_deactivated", listing_id=listing_id, deactivated_by=principal.id, bookings_kept=history
        )
        return False

    images = list(listing.image_urls or [])
    await db.delete(listing)
    await db.commit()

    for url in images:
        outbox.enqueue_image_delete(url)
    await outbox.dispatch()
    await invalidate_listing_cache()

    logger.info("listing_deleted", listing_id=listing_id, deleted_by=principal.id)
    return True


def _free_for_window(check_in: datetime, check_out: datetime):
    """No active booking on the listing overlaps [check_in, check_out)."""
    overlapping = select(Booking.id).where(
        or_(Booking.property_id == Listing.id, Booking.tour_package_id == Listing.id),
        Booking.status.in_([s.value for s in ACTIVE_BOOKING_STATUSES]),
        and_(Booking.check_in < check_out, Booking.check_out > check_in),
    )
    return ~exists(overlapping)


async def list_public(
    db: AsyncSession,
    kind: ListingKind,
    city: Optional[str] = None,
    check_in: Optional[datetime] = None,
    check_out: Optional[datetime] = None,
) -> tuple[list[dict], bool]:
    """
    Available listings of one kind. Returns (listings, served_from_cache).
    Only window-less queries are cached.
    """
    windowed = check_in is not None and check_out is not None
    if (check_in is None) != (check_out is None):
        raise _bad_request("Both check_in and check_out are required to filter by dates")
    if windowed and as_utc(check_out) <= as_utc(check_in):
        raise _bad_request("Check-out date must be after check-in date")

    if not windowed:
        cached = await get_cached_listings(kind.value, city)
        if cached is not None:
            return cached["listings"], True

    query = select(Listing).where(Listing.kind == kind.value, Listing.status == "available")
    if city:
        query = query.where(func.lower(Listing.city) == city.strip().lower())
    if windowed:
        query = query.where(_free_for_window(as_utc(check_in), as_utc(check_out)))

    result = await db.execute(query.order_by(Listing.created_at.desc(), Listing.id.desc()))
    listings = [
        ListingResponse.model_validate(listing).model_dump(mode="json")
        for listing in result.scalars().all()
    ]

    if not windowed:
        await set_cached_listings(kind.value, city, {"listings": listings})
    return listings, False


async def list_managed(
    db: AsyncSession,
    principal: Account,
    kind: Optional[ListingKind] = None,
    host_id: Optional[int] = None,
) -> list[Listing]:
    """Hosts see their own listings; admins see all, optionally by host."""
    query = select(Listing)
    if principal.role == Role.HOST.value:
        query = query.where(Listing.host_id == principal.id)
    elif host_id is not None:
        query = query.where(Listing.host_id == host_id)
    if kind is not None:
        query = query.where(Listing.kind == kind.value)

    result = await db.execute(query.order_by(Listing.created_at.desc(), Listing.id.desc()))
    return list(result.scalars().all())


async def check_availability(
    db: AsyncSession,
    listing_id: int,
    check_in: datetime,
    check_out: datetime,
) -> dict:
    await get_listing(db, listing_id)
    check_in, check_out = as_utc(check_in), as_utc(check_out)
    if check_out <= check_in:
        raise _bad_request("Check-out date must be after check-in date")

    available = await is_available(db, listing_id, check_in, check_out)
    ranges = await get_unavailable_ranges(db, listing_id, check_in, check_out)
    return {
        "listing_id": listing_id,
        "check_in": check_in,
        "check_out": check_out,
        "available": available,
        "unavailable": [{"check_in": a, "check_out": b} for a, b in ranges],
    }
