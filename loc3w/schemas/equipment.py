"""Availability and pricing Pydantic schemas."""

from datetime import date

from pydantic import BaseModel, Field, field_validator


class BlockedRange(BaseModel):
    start: date
    end: date


class AvailabilityResponse(BaseModel):
    """Calendar view of one equipment.

    ``state`` is ``unknown`` when the bookings could not be read; clients
    must then treat every date as unavailable.
    """

    equipment_id: str
    state: str
    blocked_ranges: list[BlockedRange] = []
    next_available_date: date | None = None


class RangeCheckResponse(BaseModel):
    start_date: date
    end_date: date
    available: bool


class QuoteRequest(BaseModel):
    start_date: date
    end_date: date

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: date, info) -> date:
        start_date = info.data.get("start_date")
        if start_date and v < start_date:
            raise ValueError("end_date must be on or after start_date")
        return v


class QuoteResponse(BaseModel):
    """Price preview; the same figures are used at settlement."""

    rental_days: int
    daily_price: int
    weekly_price: int | None
    subtotal: int
    commission: int
    platform_fee: int
    owner_amount: int
    total: int
    deposit_amount: int = Field(default=0)
    currency: str
