"""Pydantic schemas for API validation."""

from loc3w.schemas.booking import (
    BookingCreate,
    BookingFinalizeRequest,
    BookingRejectRequest,
    BookingResponse,
    CheckoutRequest,
)
from loc3w.schemas.equipment import AvailabilityResponse, QuoteRequest, QuoteResponse
from loc3w.schemas.payment import PaymentResponse, PaymentVerifyRequest, RefundResponse
from loc3w.schemas.wallet import (
    CommissionStatsResponse,
    RechargeRequest,
    WalletResponse,
    WalletTransactionResponse,
)

__all__ = [
    # Booking
    "BookingCreate",
    "BookingFinalizeRequest",
    "BookingRejectRequest",
    "BookingResponse",
    "CheckoutRequest",
    # Equipment
    "AvailabilityResponse",
    "QuoteRequest",
    "QuoteResponse",
    # Payment
    "PaymentResponse",
    "PaymentVerifyRequest",
    "RefundResponse",
    # Wallet
    "CommissionStatsResponse",
    "RechargeRequest",
    "WalletResponse",
    "WalletTransactionResponse",
]
