"""Payment endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from loc3w.api.deps import CurrentUser, get_payment_service
from loc3w.core.exceptions import AuthorizationError
from loc3w.schemas.payment import PaymentResponse, PaymentVerifyRequest
from loc3w.services.payment_service import PaymentService

router = APIRouter()


@router.post("/verify", response_model=PaymentResponse)
async def verify_payment(
    request: PaymentVerifyRequest,
    current_user: CurrentUser,
    payments: Annotated[PaymentService, Depends(get_payment_service)],
) -> PaymentResponse:
    """Called after the provider redirect. The charge is re-checked with the provider."""
    payment = await payments.confirm_charge(request.provider_transaction_id)
    if payment.user_id != current_user.id:
        raise AuthorizationError("You don't have access to this payment")
    return payment


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: UUID,
    current_user: CurrentUser,
    payments: Annotated[PaymentService, Depends(get_payment_service)],
) -> PaymentResponse:
    return await payments.get_payment(payment_id, current_user.id)
