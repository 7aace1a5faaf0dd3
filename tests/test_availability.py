"""Tests for the availability index."""

import asyncio
from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from loc3w.core.change_feed import ChangeFeed, change_for, queue_change
from loc3w.core.exceptions import AvailabilityUnknownError, ValidationError
from loc3w.services.availability_service import (
    AvailabilityIndex,
    AvailabilityState,
    DateRange,
)


def test_date_range_overlap_is_inclusive():
    """Test ranges sharing a single boundary day overlap."""
    r = DateRange(start=date(2024, 6, 1), end=date(2024, 6, 5))

    assert r.overlaps(date(2024, 6, 5), date(2024, 6, 7))
    assert r.overlaps(date(2024, 5, 28), date(2024, 6, 1))
    assert not r.overlaps(date(2024, 6, 6), date(2024, 6, 10))
    assert r.contains(date(2024, 6, 3))
    assert not r.contains(date(2024, 6, 6))


async def test_has_overlap_scenario(availability, equipment, make_booking):
    """Test an existing 1-5 June booking blocks 4-10 June but not 6-10 June."""
    await make_booking(date(2024, 6, 1), date(2024, 6, 5), status="paid", payment_status="paid")

    assert await availability.has_overlap(equipment.id, date(2024, 6, 4), date(2024, 6, 10))
    assert not await availability.has_overlap(equipment.id, date(2024, 6, 6), date(2024, 6, 10))


async def test_inactive_bookings_do_not_block(availability, equipment, make_booking):
    """Test rejected, refunded, cancelled and completed bookings free their dates."""
    for status in ("owner_rejected", "refunded", "cancelled", "completed"):
        await make_booking(date(2024, 7, 1), date(2024, 7, 3), status=status)

    assert await availability.blocked_ranges(equipment.id) == []
    assert not await availability.has_overlap(equipment.id, date(2024, 7, 1), date(2024, 7, 3))


async def test_requested_booking_holds_dates(availability, equipment, make_booking):
    """Test an unpaid request already blocks its dates."""
    await make_booking(date(2024, 8, 10), date(2024, 8, 12))

    assert await availability.is_date_booked(equipment.id, date(2024, 8, 11))
    assert not await availability.is_date_booked(equipment.id, date(2024, 8, 13))


async def test_exclude_booking(availability, equipment, make_booking):
    """Test a booking can be excluded from its own overlap check."""
    booking = await make_booking(date(2024, 9, 1), date(2024, 9, 3))

    assert not await availability.has_overlap(
        equipment.id, date(2024, 9, 1), date(2024, 9, 3), exclude_booking_id=booking.id
    )


async def test_has_overlap_rejects_reversed_range(availability, equipment):
    """Test a reversed range is a validation error."""
    with pytest.raises(ValidationError):
        await availability.has_overlap(equipment.id, date(2024, 6, 10), date(2024, 6, 1))


async def test_next_available_date(availability, equipment, make_booking):
    """Test the next free day skips consecutive blocked ranges."""
    await make_booking(date(2024, 6, 1), date(2024, 6, 5))
    await make_booking(date(2024, 6, 6), date(2024, 6, 8))

    assert await availability.next_available_date(equipment.id, date(2024, 6, 2)) == date(2024, 6, 9)
    assert await availability.next_available_date(equipment.id, date(2024, 6, 20)) == date(2024, 6, 20)


async def test_booked_dates_lists_every_day(availability, equipment, make_booking):
    """Test calendar dates expand each range day by day."""
    await make_booking(date(2024, 6, 1), date(2024, 6, 3))

    assert await availability.booked_dates(equipment.id) == [
        date(2024, 6, 1),
        date(2024, 6, 2),
        date(2024, 6, 3),
    ]


class BrokenSession:
    """Session whose queries always fail."""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))


async def test_unreadable_bookings_fail_closed(equipment):
    """Test a storage failure never reports dates as free."""
    index = AvailabilityIndex(BrokenSession())

    with pytest.raises(AvailabilityUnknownError):
        await index.blocked_ranges(equipment.id)
    assert await index.date_state(equipment.id, date(2024, 6, 1)) == AvailabilityState.UNKNOWN
    assert await index.is_date_booked(equipment.id, date(2024, 6, 1))
    assert await index.has_overlap(equipment.id, date(2024, 6, 1), date(2024, 6, 2))
    assert await index.next_available_date(equipment.id, date(2024, 6, 1)) is None


async def test_subscribe_receives_committed_changes(db, availability, equipment, make_booking):
    """Test subscribers are told about a booking change after commit."""
    received = []
    unsubscribe = availability.subscribe(equipment.id, received.append)

    booking = await make_booking(date(2024, 10, 1), date(2024, 10, 2))
    queue_change(db, availability.feed, change_for(booking))
    assert received == []

    await db.commit()
    # Publishing is scheduled on the loop after commit
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert [c.booking_id for c in received] == [str(booking.id)]
    unsubscribe()


def test_subscribe_without_feed_is_inert():
    """Test subscribing without a feed returns a no-op unsubscribe."""
    index = AvailabilityIndex(db=None)
    unsubscribe = index.subscribe(uuid4(), lambda change: None)
    unsubscribe()


def test_change_feed_requires_transport():
    """Test the base feed cannot be used without a concrete transport."""
    with pytest.raises(TypeError):
        ChangeFeed()
