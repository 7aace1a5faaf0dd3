"""Webhook endpoints for payment gateways.

Callbacks only say which charge to look at; the outcome always comes from
re-verifying the charge with the provider.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from loc3w.api.deps import get_payment_service
from loc3w.config import settings
from loc3w.core.exceptions import NotFoundError
from loc3w.gateways.stripe_gateway import StripeGateway
from loc3w.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()

STRIPE_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
)


async def _confirm(payments: PaymentService, provider_transaction_id: str) -> None:
    try:
        await payments.confirm_charge(provider_transaction_id)
    except NotFoundError:
        logger.warning(f"Webhook for unknown transaction {provider_transaction_id} ignored")


@router.post("/stripe", status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    payments: Annotated[PaymentService, Depends(get_payment_service)],
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> dict:
    """Handle Stripe checkout events."""
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe webhook secret is not configured",
        )

    payload = await request.body()
    event = StripeGateway().verify_webhook(payload, stripe_signature or "")
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    if event["type"] in STRIPE_EVENTS:
        await _confirm(payments, event["data"]["object"]["id"])
    return {"received": True}


@router.post("/kkiapay", status_code=status.HTTP_200_OK)
async def kkiapay_webhook(
    request: Request,
    payments: Annotated[PaymentService, Depends(get_payment_service)],
) -> dict:
    """Handle KkiaPay transaction callbacks."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        )

    transaction_id = payload.get("transactionId") or payload.get("transaction_id")
    if not transaction_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing transaction id",
        )

    await _confirm(payments, str(transaction_id))
    return {"received": True}
