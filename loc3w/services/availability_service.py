"""Equipment availability.

Answers date-availability questions from the bookings table on every call;
nothing is cached, so answers are only as old as the last commit. When the
store cannot be read the index fails closed: dates are reported as booked
(or unknown), never as free.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.core.change_feed import ChangeCallback, ChangeFeed, Unsubscribe
from loc3w.core.exceptions import AvailabilityUnknownError, ValidationError
from loc3w.domain.booking_state import ACTIVE_STATUSES
from loc3w.models.booking import Booking

logger = logging.getLogger(__name__)

MAX_SCAN_DAYS = 365


class AvailabilityState(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range held by an active booking."""

    start: date
    end: date
    booking_id: UUID | None = None

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlaps(self, start: date, end: date) -> bool:
        return start <= self.end and end >= self.start


class AvailabilityIndex:
    """Blocked dates per equipment, derived from active bookings."""

    def __init__(self, db: AsyncSession, feed: ChangeFeed | None = None):
        self.db = db
        self.feed = feed

    async def blocked_ranges(
        self,
        equipment_id: UUID,
        exclude_booking_id: UUID | None = None,
    ) -> list[DateRange]:
        """Date ranges held by requested, paid or approved bookings.

        Raises:
            AvailabilityUnknownError: the bookings table could not be read
        """
        query = select(Booking.id, Booking.start_date, Booking.end_date).where(
            Booking.equipment_id == equipment_id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)

        try:
            result = await self.db.execute(query.order_by(Booking.start_date))
        except SQLAlchemyError as e:
            logger.error(f"Availability lookup failed for equipment {equipment_id}: {e}")
            raise AvailabilityUnknownError() from e

        return [
            DateRange(start=row.start_date, end=row.end_date, booking_id=row.id)
            for row in result.all()
        ]

    async def date_state(self, equipment_id: UUID, day: date) -> AvailabilityState:
        try:
            ranges = await self.blocked_ranges(equipment_id)
        except AvailabilityUnknownError:
            return AvailabilityState.UNKNOWN
        if any(r.contains(day) for r in ranges):
            return AvailabilityState.BOOKED
        return AvailabilityState.AVAILABLE

    async def is_date_booked(self, equipment_id: UUID, day: date) -> bool:
        """True when booked or when availability is unknown."""
        return await self.date_state(equipment_id, day) != AvailabilityState.AVAILABLE

    async def has_overlap(
        self,
        equipment_id: UUID,
        start: date,
        end: date,
        exclude_booking_id: UUID | None = None,
    ) -> bool:
        """True when [start, end] intersects an active booking, or availability is unknown."""
        if end < start:
            raise ValidationError("End date must be on or after start date")
        try:
            ranges = await self.blocked_ranges(equipment_id, exclude_booking_id)
        except AvailabilityUnknownError:
            return True
        return any(r.overlaps(start, end) for r in ranges)

    async def next_available_date(self, equipment_id: UUID, from_date: date) -> date | None:
        """First free day on or after ``from_date`` within a year, else None."""
        try:
            ranges = await self.blocked_ranges(equipment_id)
        except AvailabilityUnknownError:
            return None

        day = from_date
        for _ in range(MAX_SCAN_DAYS):
            if not any(r.contains(day) for r in ranges):
                return day
            day += timedelta(days=1)
        return None

    async def booked_dates(self, equipment_id: UUID) -> list[date]:
        """Every blocked day, for calendar display.

        Raises:
            AvailabilityUnknownError: the bookings table could not be read
        """
        days: set[date] = set()
        for r in await self.blocked_ranges(equipment_id):
            day = r.start
            while day <= r.end:
                days.add(day)
                day += timedelta(days=1)
        return sorted(days)

    def subscribe(self, equipment_id: UUID, on_change: ChangeCallback) -> Unsubscribe:
        """Call ``on_change`` after each committed booking change for the equipment.

        The callback receives a hint only and should re-query. Without a
        feed the subscription is inert and callers keep polling.
        """
        if self.feed is None:
            return lambda: None
        return self.feed.subscribe(str(equipment_id), on_change)
