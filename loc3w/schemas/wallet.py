"""Wallet Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    balance: int
    currency: str
    is_frozen: bool


class WalletTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: int
    transaction_type: str
    status: str
    description: str
    booking_id: UUID | None
    reference_id: str | None
    created_at: datetime
    completed_at: datetime | None


class RechargeRequest(BaseModel):
    amount: int = Field(..., gt=0)
    method: str = Field(default="mobile_money", pattern="^(card|mobile_money)$")


class CommissionStatsResponse(BaseModel):
    period: str
    total_commission: int
    transaction_count: int
