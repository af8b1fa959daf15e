"""
Tests for the availability checker, the listing version claim, and the
side-effect outbox, exercised directly against the service layer.
"""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.metrics import db_retries, side_effects
from staybook.domain.enums import BookingStatus
from staybook.models import Booking, Listing
from staybook.schemas.booking import BookingCreate
from staybook.services import availability_service, booking_service
from staybook.services.availability_service import claim_listing, get_unavailable_ranges, is_available
from staybook.services.outbox import SideEffectOutbox

from conftest import TestSessionLocal, days_from_today


def window(start: int, nights: int):
    check_in = days_from_today(start)
    return check_in, check_in + timedelta(days=nights)


@pytest.mark.asyncio
async def test_overlap_law(db_session: AsyncSession, guest, other_guest, property_listing, seed_booking):
    """With [30,34) and [40,43) held, any intersecting request is refused."""
    await seed_booking(guest, property_listing, 30, 4)
    await seed_booking(other_guest, property_listing, 40, 3, status=BookingStatus.CONFIRMED.value)

    for start, nights in [(29, 2), (33, 1), (31, 1), (38, 3), (42, 5), (25, 30)]:
        assert not await is_available(db_session, property_listing.id, *window(start, nights))

    for start, nights in [(26, 4), (34, 6), (43, 2)]:
        assert await is_available(db_session, property_listing.id, *window(start, nights))


@pytest.mark.asyncio
async def test_inactive_bookings_never_block(db_session: AsyncSession, guest, property_listing, seed_booking):
    await seed_booking(guest, property_listing, 30, 4, status=BookingStatus.CANCELLED.value)
    await seed_booking(guest, property_listing, 30, 4, status=BookingStatus.COMPLETED.value)
    assert await is_available(db_session, property_listing.id, *window(30, 4))


@pytest.mark.asyncio
async def test_exclude_own_booking(db_session: AsyncSession, guest, property_listing, seed_booking):
    booking = await seed_booking(guest, property_listing, 30, 4)
    assert not await is_available(db_session, property_listing.id, *window(31, 4))
    assert await is_available(db_session, property_listing.id, *window(31, 4), exclude_booking_id=booking.id)


@pytest.mark.asyncio
async def test_listing_status_gates_availability(db_session: AsyncSession, property_listing):
    assert await is_available(db_session, property_listing.id, *window(30, 2))
    property_listing.status = "inactive"
    await db_session.commit()
    assert not await is_available(db_session, property_listing.id, *window(30, 2))
    assert not await is_available(db_session, 9999, *window(30, 2))


@pytest.mark.asyncio
async def test_storage_error_fails_closed(db_session: AsyncSession, property_listing, monkeypatch):
    async def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    monkeypatch.setattr(availability_service, "find_conflicts", broken)
    assert not await is_available(db_session, property_listing.id, *window(30, 2))


@pytest.mark.asyncio
async def test_unavailable_ranges_are_sorted(db_session: AsyncSession, guest, property_listing, seed_booking):
    await seed_booking(guest, property_listing, 40, 2)
    await seed_booking(guest, property_listing, 30, 2)
    ranges = await get_unavailable_ranges(db_session, property_listing.id, *window(0, 60))
    assert [r[0] for r in ranges] == [days_from_today(30), days_from_today(40)]


@pytest.mark.asyncio
async def test_claim_is_compare_and_swap(db_session: AsyncSession, property_listing):
    """Two writers that read the same version cannot both claim the listing."""
    listing_id = property_listing.id

    async with TestSessionLocal() as first, TestSessionLocal() as second:
        mine = await first.get(Listing, listing_id)
        theirs = await second.get(Listing, listing_id)
        assert mine.version == theirs.version

        assert await claim_listing(first, mine)
        await first.commit()

        assert not await claim_listing(second, theirs)
        await second.rollback()


@pytest.mark.asyncio
async def test_losing_writer_rechecks_and_is_rejected(
    db_session: AsyncSession, guest, other_guest, property_listing, image_store, mailer, monkeypatch,
):
    """
    Simulate a race: between our availability check and our claim, another
    request commits an overlapping booking and bumps the version. Our claim
    fails, we retry, the re-check sees the new booking and we are rejected.
    """
    listing_id, other_id = property_listing.id, other_guest.id
    check_in, check_out = window(30, 4)
    real_claim = booking_service.claim_listing
    raced = []

    async def racing_claim(db, listing):
        if not raced:
            raced.append(True)
            async with TestSessionLocal() as other:
                winner = await other.get(Listing, listing_id)
                assert await real_claim(other, winner)
                other.add(Booking(
                    user_id=other_id, property_id=listing_id,
                    check_in=check_in, check_out=check_out,
                    guests=2, total_price=400,
                ))
                await other.commit()
        return await real_claim(db, listing)

    monkeypatch.setattr(booking_service, "claim_listing", racing_claim)
    retries_before = db_retries._value.get()

    outbox = SideEffectOutbox(image_store=image_store, mailer=mailer)
    data = BookingCreate(
        property_id=listing_id, check_in=check_in, check_out=check_out, guests=2, total_price=400,
    )
    with pytest.raises(HTTPException) as exc:
        await booking_service.create_booking(db_session, outbox, image_store, guest, data)

    assert exc.value.status_code == 400
    assert db_retries._value.get() == retries_before + 1
    assert mailer.sent == []

    async with TestSessionLocal() as check:
        listing = await check.get(Listing, listing_id)
        assert await is_available(check, listing.id, *window(0, 60)) is False
        result = await check.execute(
            Booking.__table__.select().where(Booking.property_id == listing_id)
        )
        rows = result.all()
        assert len(rows) == 1
        assert rows[0].user_id == other_id


@pytest.mark.asyncio
async def test_outbox_failures_are_counted_not_raised(image_store, mailer):
    mailer.fail = True
    outbox = SideEffectOutbox(image_store=image_store, mailer=mailer)
    failed_before = side_effects.labels(kind="email", result="failed")._value.get()

    outbox.enqueue_email("guest@example.com", "Subject", "<p>Body</p>")
    outbox.enqueue_image_delete("https://images.test/missing.png")
    batch = await outbox.dispatch()

    assert [effect.ok for effect in batch] == [False, True]
    assert "SMTP unavailable" in batch[0].error
    assert side_effects.labels(kind="email", result="failed")._value.get() == failed_before + 1
    assert outbox.pending == []


def test_outbox_skips_missing_recipient(image_store, mailer):
    outbox = SideEffectOutbox(image_store=image_store, mailer=mailer)
    outbox.enqueue_email(None, "Subject", "<p>Body</p>")
    assert outbox.pending == []
