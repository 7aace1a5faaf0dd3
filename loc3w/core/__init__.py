"""Core utilities and security modules."""

from loc3w.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    AvailabilityUnknownError,
    DateConflictError,
    EquipmentNotAvailable,
    InsufficientFundsError,
    InvalidBookingStatus,
    InvariantViolationError,
    NotFoundError,
    PaymentGatewayError,
    RefundFailedError,
    ValidationError,
)
from loc3w.core.security import create_access_token, verify_token

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "AvailabilityUnknownError",
    "DateConflictError",
    "EquipmentNotAvailable",
    "InsufficientFundsError",
    "InvalidBookingStatus",
    "InvariantViolationError",
    "NotFoundError",
    "PaymentGatewayError",
    "RefundFailedError",
    "ValidationError",
    "create_access_token",
    "verify_token",
]
