"""
Listing endpoints: public browsing, host/admin management, availability.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.api.deps import get_image_store, get_outbox, require_roles
from staybook.db.session import get_db
from staybook.domain.enums import ListingKind, Role
from staybook.infrastructure import ImageStore
from staybook.models.account import Account
from staybook.schemas.listing import (
    AvailabilityResponse,
    ImageRemoval,
    ListingCreate,
    ListingEnvelope,
    ListingListEnvelope,
    ListingUpdate,
)
from staybook.services import listing_service
from staybook.services.outbox import SideEffectOutbox

router = APIRouter(prefix="/listings", tags=["Listings"])

host_or_admin = require_roles(Role.HOST, Role.ADMIN)


@router.get("/public", response_model=ListingListEnvelope)
async def list_public_listings(
    kind: ListingKind = ListingKind.PROPERTY,
    city: Optional[str] = None,
    check_in: Optional[datetime] = None,
    check_out: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Browse available listings. No authentication required.

    Cached in Redis per (kind, city); adding a date window filters out
    listings with an overlapping pending/confirmed booking and bypasses the cache.
    """
    listings, cached = await listing_service.list_public(db, kind, city, check_in, check_out)
    return ListingListEnvelope(
        message="Listings fetched successfully",
        total=len(listings),
        listings=listings,
        cached=cached,
    )


@router.get("/", response_model=ListingListEnvelope)
async def list_managed_listings(
    kind: Optional[ListingKind] = None,
    host_id: Optional[int] = None,
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
):
    """Hosts get their own listings; admins get all, optionally for one host."""
    listings = await listing_service.list_managed(db, principal, kind, host_id)
    return ListingListEnvelope(
        message="Listings fetched successfully",
        total=len(listings),
        listings=listings,
    )


@router.post("/", response_model=ListingEnvelope, status_code=status.HTTP_201_CREATED)
async def create_listing(
    kind: ListingKind = Form(...),
    title: str = Form(...),
    description: str = Form(...),
    host_id: Optional[int] = Form(None),
    address: Optional[str] = Form(None),
    city: Optional[str] = Form(None),
    price_per_night: Optional[float] = Form(None),
    amenities: Optional[list[str]] = Form(None),
    price: Optional[float] = Form(None),
    duration: Optional[str] = Form(None),
    images: Optional[list[UploadFile]] = File(None),
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
    image_store: ImageStore = Depends(get_image_store),
):
    """Create a property or tour package (multipart, at least one image)."""
    try:
        data = ListingCreate(
            kind=kind,
            title=title,
            description=description,
            host_id=host_id,
            address=address,
            city=city,
            price_per_night=price_per_night,
            amenities=amenities or [],
            price=price,
            duration=duration,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    listing = await listing_service.create_listing(db, outbox, image_store, principal, data, images)
    return ListingEnvelope(message="Listing created successfully", listing=listing)


@router.get("/{listing_id}", response_model=ListingEnvelope)
async def get_listing(listing_id: int, db: AsyncSession = Depends(get_db)):
    listing = await listing_service.get_listing(db, listing_id)
    return ListingEnvelope(message="Listing fetched successfully", listing=listing)


@router.patch("/{listing_id}", response_model=ListingEnvelope)
async def update_listing(
    listing_id: int,
    patch: ListingUpdate,
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
):
    listing = await listing_service.update_listing(db, principal, listing_id, patch)
    return ListingEnvelope(message="Listing updated successfully", listing=listing)


@router.delete("/{listing_id}")
async def delete_listing(
    listing_id: int,
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
):
    """
    Delete a listing without pending or confirmed bookings, with its images.
    A listing with past bookings is deactivated instead so that history survives.
    """
    deleted = await listing_service.delete_listing(db, outbox, principal, listing_id)
    message = "Listing deleted successfully" if deleted else "Listing has booking history and was deactivated"
    return {"message": message, "listing_id": listing_id, "deleted": deleted}


@router.post("/{listing_id}/images", response_model=ListingEnvelope)
async def add_listing_images(
    listing_id: int,
    images: list[UploadFile] = File(...),
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
    outbox: SideEffectOutbox = Depends(get_outbox),
    image_store: ImageStore = Depends(get_image_store),
):
    listing = await listing_service.add_images(db, outbox, image_store, principal, listing_id, images)
    return ListingEnvelope(message="Images added successfully", listing=listing)


@router.delete("/{listing_id}/images", response_model=ListingEnvelope)
async def remove_listing_images(
    listing_id: int,
    removal: ImageRemoval,
    principal: Account = Depends(host_or_admin),
    db: AsyncSession = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
):
    listing = await listing_service.remove_images(db, image_store, principal, listing_id, removal.urls)
    return ListingEnvelope(message="Images removed successfully", listing=listing)


@router.get("/{listing_id}/availability", response_model=AvailabilityResponse)
async def listing_availability(
    listing_id: int,
    check_in: datetime,
    check_out: datetime,
    db: AsyncSession = Depends(get_db),
):
    """Whether the range is free, plus the ranges already held inside it."""
    return await listing_service.check_availability(db, listing_id, check_in, check_out)
