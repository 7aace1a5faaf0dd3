"""Booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from loc3w.api.deps import (
    CurrentAdmin,
    CurrentUser,
    get_booking_lifecycle,
    get_payment_service,
)
from loc3w.core.middleware import booking_limiter, payment_limiter
from loc3w.schemas.booking import (
    BookingCreate,
    BookingFinalizeRequest,
    BookingFinalizeResponse,
    BookingListResponse,
    BookingRejectRequest,
    BookingResponse,
    CheckoutRequest,
    DisputeResponse,
)
from loc3w.schemas.payment import PaymentResponse, RefundResponse
from loc3w.services.booking_service import BookingLifecycle
from loc3w.services.payment_service import PaymentService

router = APIRouter()

Lifecycle = Annotated[BookingLifecycle, Depends(get_booking_lifecycle)]
Payments = Annotated[PaymentService, Depends(get_payment_service)]


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_limiter)],
)
async def create_booking(
    booking_data: BookingCreate,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
) -> BookingResponse:
    """Request a rental. The dates are held until the request is paid or expires."""
    return await lifecycle.create(
        equipment_id=booking_data.equipment_id,
        renter_id=current_user.id,
        start_date=booking_data.start_date,
        end_date=booking_data.end_date,
    )


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    current_user: CurrentUser,
    lifecycle: Lifecycle,
    role: Annotated[str, Query(pattern="^(renter|owner)$")] = "renter",
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> BookingListResponse:
    """List bookings where the current user is renter or owner."""
    bookings = await lifecycle.list_for_user(
        current_user.id, role=role, status=status_filter, limit=limit, offset=offset
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in bookings],
        limit=limit,
        offset=offset,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
) -> BookingResponse:
    return await lifecycle.get_booking(
        booking_id, current_user.id, is_admin=current_user.role == "admin"
    )


@router.post(
    "/{booking_id}/pay/wallet",
    response_model=BookingResponse,
    dependencies=[Depends(payment_limiter)],
)
async def pay_with_wallet(
    booking_id: UUID,
    current_user: CurrentUser,
    payments: Payments,
) -> BookingResponse:
    """Pay the booking total from the renter's wallet."""
    return await payments.pay_with_wallet(booking_id, current_user.id)


@router.post(
    "/{booking_id}/checkout",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(payment_limiter)],
)
async def start_checkout(
    booking_id: UUID,
    request: CheckoutRequest,
    current_user: CurrentUser,
    payments: Payments,
) -> PaymentResponse:
    """Open a card or mobile money checkout; the booking is paid once the charge verifies."""
    return await payments.start_booking_checkout(booking_id, current_user.id, request.method)


@router.post("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: UUID,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
) -> BookingResponse:
    """Owner accepts a paid booking; funds are settled to the owner and the platform."""
    return await lifecycle.owner_approve(booking_id, current_user.id)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    request: BookingRejectRequest,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
) -> BookingResponse:
    """Owner declines a paid booking; the renter is refunded."""
    return await lifecycle.owner_reject(booking_id, current_user.id, request.reason)


@router.post("/{booking_id}/finalize", response_model=BookingFinalizeResponse)
async def finalize_booking(
    booking_id: UUID,
    request: BookingFinalizeRequest,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
) -> BookingFinalizeResponse:
    """Record the equipment return."""
    outcome = await lifecycle.finalize(
        booking_id, current_user.id, condition=request.condition, notes=request.notes
    )
    return BookingFinalizeResponse(
        booking=BookingResponse.model_validate(outcome.booking),
        dispute=DisputeResponse.model_validate(outcome.dispute) if outcome.dispute else None,
    )


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    current_user: CurrentUser,
    lifecycle: Lifecycle,
) -> BookingResponse:
    """Withdraw an unpaid request."""
    return await lifecycle.cancel(booking_id, current_user.id)


@router.post("/{booking_id}/refund/retry", response_model=RefundResponse)
async def retry_refund(
    booking_id: UUID,
    admin: CurrentAdmin,
    lifecycle: Lifecycle,
) -> RefundResponse:
    """Retry a refund that failed after rejection (admin only)."""
    return await lifecycle.retry_refund(booking_id)
