"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class EquipmentNotAvailable(AppException):
    """Equipment cannot be booked at all (moderation, own listing)."""

    def __init__(self, detail: str = "This equipment is not available for booking") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class DateConflictError(AppException):
    """Requested range overlaps an active booking."""

    def __init__(self, detail: str = "The selected dates are not available") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class AvailabilityUnknownError(AppException):
    """Availability could not be determined; callers must not treat dates as free."""

    def __init__(self, detail: str = "Availability is temporarily unknown. Please retry.") -> None:
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


class InvalidBookingStatus(AppException):
    """Invalid booking status for operation."""

    def __init__(self, detail: str = "This operation is not allowed for the current booking status") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InsufficientFundsError(AppException):
    """Wallet balance cannot cover a debit."""

    def __init__(self, required: int | None = None, available: int | None = None) -> None:
        self.required = required
        self.available = available
        detail = "Insufficient wallet balance"
        if required is not None and available is not None:
            detail = f"Insufficient wallet balance: {required} required, {available} available"
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


class PaymentGatewayError(AppException):
    """Payment provider unreachable, rejected the request or answered garbage."""

    def __init__(
        self,
        provider: str,
        detail: str | None = None,
        retryable: bool = True,
    ) -> None:
        self.provider = provider
        self.retryable = retryable
        message = f"Payment provider '{provider}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


class RefundFailedError(AppException):
    """Refund could not be completed and needs manual reconciliation."""

    def __init__(self, booking_id: str, detail: str | None = None) -> None:
        self.booking_id = booking_id
        message = f"Refund for booking '{booking_id}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


class InvariantViolationError(AppException):
    """Ledger or settlement invariant broken; the affected wallet must be frozen."""

    def __init__(self, detail: str = "Internal consistency check failed") -> None:
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class RateLimitExceeded(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Too many requests. Please try again later.") -> None:
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)
