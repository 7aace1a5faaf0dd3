"""Rental pricing.

Rentals of seven days or more use the weekly rate for every full week
when the equipment has one; remaining days use the daily rate.
"""

from datetime import date

from loc3w.core.exceptions import ValidationError

DAYS_PER_WEEK = 7


def rental_days(start: date, end: date) -> int:
    """Number of rental days for an inclusive date range.

    A same-day rental counts as one day.
    """
    if end < start:
        raise ValidationError("End date must be on or after start date")
    return (end - start).days + 1


def calculate_rental_price(daily_price: int, weekly_price: int | None, days: int) -> int:
    """Subtotal in whole FCFA for ``days`` days of rental."""
    if days <= 0:
        raise ValidationError("Rental duration must be at least one day")
    if daily_price < 0 or (weekly_price is not None and weekly_price < 0):
        raise ValidationError("Prices cannot be negative")

    if days >= DAYS_PER_WEEK and weekly_price:
        full_weeks, remaining_days = divmod(days, DAYS_PER_WEEK)
        return full_weeks * weekly_price + remaining_days * daily_price
    return days * daily_price
