"""Stripe payment gateway adapter (card payments via Checkout Sessions).

XOF is a zero-decimal currency for Stripe, so amounts are sent as-is.
"""

import logging

import stripe

from loc3w.config import settings
from loc3w.core.exceptions import PaymentGatewayError
from loc3w.gateways.base import (
    ChargeSession,
    ChargeStatus,
    ChargeVerification,
    GatewayType,
    PaymentGateway,
    RefundOutcome,
    RefundStatus,
)

logger = logging.getLogger(__name__)

REFUND_STATUSES = {
    "succeeded": RefundStatus.COMPLETED,
    "pending": RefundStatus.INITIATED,
    "requires_action": RefundStatus.INITIATED,
    "failed": RefundStatus.FAILED,
    "canceled": RefundStatus.FAILED,
}


class StripeGateway(PaymentGateway):
    """Stripe payment gateway implementation."""

    def __init__(self, secret_key: str | None = None, webhook_secret: str | None = None):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    def _configure(self) -> None:
        if not self.secret_key:
            raise PaymentGatewayError("stripe", "Stripe not configured", retryable=False)
        stripe.api_key = self.secret_key

    async def initiate_charge(
        self,
        amount: int,
        currency: str,
        metadata: dict | None = None,
    ) -> ChargeSession:
        """Create a Stripe Checkout Session."""
        self._configure()
        metadata = {key: str(value) for key, value in (metadata or {}).items()}
        success_url = (
            f"{settings.frontend_url}{settings.payment_success_path}"
            "?session_id={CHECKOUT_SESSION_ID}"
        )

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": {"name": metadata.get("description", "3W-LOC")},
                            "unit_amount": amount,
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=f"{settings.frontend_url}{settings.payment_cancel_path}",
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.warning(f"Stripe checkout creation failed: {e}")
            raise PaymentGatewayError("stripe", str(e)) from e

        return ChargeSession(
            checkout_url=session.url,
            provider_transaction_id=session.id,
            raw_response={"id": session.id, "url": session.url},
        )

    async def verify_charge(self, provider_transaction_id: str) -> ChargeVerification:
        """Map Checkout Session state to a charge status."""
        self._configure()
        try:
            session = stripe.checkout.Session.retrieve(provider_transaction_id)
        except stripe.StripeError as e:
            logger.warning(f"Stripe verification failed for {provider_transaction_id}: {e}")
            raise PaymentGatewayError("stripe", str(e)) from e

        if session.payment_status == "paid":
            status = ChargeStatus.COMPLETED
        elif session.status == "expired":
            status = ChargeStatus.FAILED
        else:
            status = ChargeStatus.PENDING

        return ChargeVerification(
            status=status,
            amount=session.amount_total,
            raw_response={
                "status": session.status,
                "payment_status": session.payment_status,
                "payment_intent": session.payment_intent,
            },
        )

    async def initiate_refund(
        self,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundOutcome:
        """Refund the PaymentIntent behind a Checkout Session."""
        self._configure()
        try:
            session = stripe.checkout.Session.retrieve(provider_transaction_id)
            if not session.payment_intent:
                raise PaymentGatewayError(
                    "stripe", "Checkout session has no payment to refund", retryable=False
                )
            refund = stripe.Refund.create(
                payment_intent=session.payment_intent,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
            )
        except stripe.StripeError as e:
            logger.warning(f"Stripe refund failed for {provider_transaction_id}: {e}")
            raise PaymentGatewayError("stripe", str(e)) from e

        status = REFUND_STATUSES.get(refund.status, RefundStatus.INITIATED)
        return RefundOutcome(
            status=status,
            refund_id=refund.id,
            error_message=getattr(refund, "failure_reason", None) if status == RefundStatus.FAILED else None,
            raw_response={"status": refund.status, "id": refund.id},
        )

    def verify_webhook(self, payload: bytes, signature: str) -> dict | None:
        """Verify Stripe webhook signature."""
        if not self.webhook_secret:
            return None

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError):
            return None
