"""Payment-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    purpose: str
    booking_id: UUID | None
    amount: int
    currency: str
    provider: str
    method: str
    provider_transaction_id: str
    checkout_url: str | None
    status: str
    created_at: datetime
    completed_at: datetime | None


class PaymentVerifyRequest(BaseModel):
    """Client-reported transaction id; re-verified with the provider."""

    provider_transaction_id: str = Field(..., min_length=1, max_length=100)


class RefundResponse(BaseModel):
    """Schema for refund response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    amount: int
    status: str
    provider_refund_id: str | None
    error_message: str | None
    needs_manual_review: bool
    created_at: datetime
