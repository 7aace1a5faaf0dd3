"""Booking number generation."""

import random
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def generate_booking_number(db: AsyncSession) -> str:
    """Generate a unique booking number in format LOC-XXXXXX.

    Args:
        db: Database session for uniqueness check

    Returns:
        str: Unique booking number like 'LOC-A3B7K9'
    """
    from loc3w.models.booking import Booking

    while True:
        chars = string.ascii_uppercase + string.digits
        random_part = "".join(random.choices(chars, k=6))
        booking_number = f"LOC-{random_part}"

        result = await db.execute(
            select(Booking.id).where(Booking.booking_number == booking_number)
        )
        if not result.scalar_one_or_none():
            return booking_number
