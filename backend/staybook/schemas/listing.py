"""
Pydantic schemas for listing-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from staybook.domain.enums import ListingKind


class ListingCreate(BaseModel):
    kind: ListingKind
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    host_id: Optional[int] = None  # admins create on behalf of a host
    # Property fields
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    price_per_night: Optional[float] = Field(None, allow_inf_nan=False)
    amenities: list[str] = Field(default_factory=list, max_length=20)
    # Tour package fields
    price: Optional[float] = Field(None, allow_inf_nan=False)
    duration: Optional[str] = Field(None, max_length=100)


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    status: Optional[str] = None
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    price_per_night: Optional[float] = Field(None, allow_inf_nan=False)
    amenities: Optional[list[str]] = Field(None, max_length=20)
    price: Optional[float] = Field(None, allow_inf_nan=False)
    duration: Optional[str] = Field(None, max_length=100)


class ImageRemoval(BaseModel):
    urls: list[str] = Field(..., min_length=1)


class ListingSummary(BaseModel):
    id: int
    kind: ListingKind
    title: str
    city: Optional[str] = None
    host_id: int

    model_config = {"from_attributes": True}


class ListingResponse(BaseModel):
    id: int
    kind: ListingKind
    title: str
    description: str
    status: str
    host_id: int
    image_urls: list[str]
    address: Optional[str] = None
    city: Optional[str] = None
    price_per_night: Optional[float] = None
    amenities: Optional[list[str]] = None
    price: Optional[float] = None
    duration: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ListingEnvelope(BaseModel):
    message: str
    listing: ListingResponse


class ListingListEnvelope(BaseModel):
    message: str
    total: int
    listings: list[ListingResponse]
    cached: bool = False


class DateRange(BaseModel):
    check_in: datetime
    check_out: datetime


class AvailabilityResponse(BaseModel):
    listing_id: int
    check_in: datetime
    check_out: datetime
    available: bool
    unavailable: list[DateRange]
