"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    equipment_id: UUID
    start_date: date
    end_date: date

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: date, info) -> date:
        start_date = info.data.get("start_date")
        if start_date and v < start_date:
            raise ValueError("end_date must be on or after start_date")
        return v


class BookingRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class BookingFinalizeRequest(BaseModel):
    condition: str = Field(..., pattern="^(good|damaged)$")
    notes: str | None = Field(None, max_length=2000)


class CheckoutRequest(BaseModel):
    """Pay a booking through an external provider."""

    method: str = Field(..., pattern="^(card|mobile_money)$")


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_number: str
    equipment_id: UUID
    renter_id: UUID
    owner_id: UUID

    # Dates
    start_date: date
    end_date: date
    rental_days: int

    # Amounts
    daily_price: int
    weekly_price: int | None
    total_price: int
    commission_amount: int
    platform_fee: int
    owner_amount: int
    amount_charged: int
    deposit_amount: int
    currency: str

    # Status
    status: str
    payment_status: str
    payment_method: str | None
    owner_signed: bool
    renter_signed: bool
    rejection_reason: str | None
    refund_review_required: bool

    # Timestamps
    paid_at: datetime | None
    approved_at: datetime | None
    rejected_at: datetime | None
    completed_at: datetime | None
    refunded_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime


class BookingListResponse(BaseModel):
    items: list[BookingResponse]
    limit: int
    offset: int


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    category: str
    description: str
    status: str
    created_at: datetime


class BookingFinalizeResponse(BaseModel):
    booking: BookingResponse
    dispute: DisputeResponse | None = None
