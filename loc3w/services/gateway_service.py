"""Payment gateway service.

Routes payment operations to the appropriate gateway adapter.
No business logic here - only gateway coordination and polling.
"""

import asyncio
import logging
import random

from loc3w.config import settings
from loc3w.core.exceptions import PaymentGatewayError, ValidationError
from loc3w.gateways.base import (
    ChargeSession,
    ChargeStatus,
    ChargeVerification,
    GatewayType,
    PaymentGateway,
    PaymentMethod,
    RefundOutcome,
)
from loc3w.gateways.kkiapay import KkiapayGateway
from loc3w.gateways.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

METHOD_PROVIDERS: dict[PaymentMethod, GatewayType] = {
    PaymentMethod.CARD: GatewayType.STRIPE,
    PaymentMethod.MOBILE_MONEY: GatewayType.KKIAPAY,
}


def backoff_delay(
    attempt: int,
    base: float | None = None,
    cap: float | None = None,
    jitter: bool = True,
) -> float:
    """Exponential backoff delay in seconds for a zero-based attempt number."""
    base = settings.charge_poll_base_delay if base is None else base
    cap = settings.charge_poll_max_delay if cap is None else cap
    delay = min(cap, base * (2 ** attempt))
    if jitter:
        delay = random.uniform(delay / 2, delay)
    return delay


def _assert_live_keys_in_production(gateway_type: GatewayType) -> None:
    """Block live Stripe keys outside production.

    Raises:
        PaymentGatewayError: If a live key is configured in a non-production
            environment (not retryable)
    """
    if settings.environment == "production":
        return
    key = settings.stripe_secret_key or ""
    if gateway_type == GatewayType.STRIPE and key.startswith("sk_live_"):
        logger.error(f"Refusing live stripe operation in {settings.environment} environment")
        raise PaymentGatewayError(
            gateway_type.value,
            f"live keys are not allowed in {settings.environment} environment",
            retryable=False,
        )


class GatewayService:
    """Per-request registry of payment gateways."""

    def __init__(self, gateways: dict[GatewayType, PaymentGateway] | None = None):
        self._gateways: dict[GatewayType, PaymentGateway] = dict(gateways or {})

    def get_gateway(self, gateway_type: str | GatewayType) -> PaymentGateway:
        """Get or create gateway instance."""
        try:
            gateway_type = GatewayType(gateway_type)
        except ValueError as e:
            raise ValidationError(f"Unsupported payment provider: {gateway_type}") from e

        if gateway_type not in self._gateways:
            if gateway_type == GatewayType.STRIPE:
                self._gateways[gateway_type] = StripeGateway()
            else:
                self._gateways[gateway_type] = KkiapayGateway()

        return self._gateways[gateway_type]

    @staticmethod
    def provider_for(method: str | PaymentMethod) -> GatewayType:
        """Gateway that handles an external payment method."""
        try:
            return METHOD_PROVIDERS[PaymentMethod(method)]
        except (ValueError, KeyError) as e:
            raise ValidationError(f"No payment provider for method: {method}") from e

    async def initiate_charge(
        self,
        gateway_type: str | GatewayType,
        amount: int,
        currency: str,
        metadata: dict | None = None,
    ) -> ChargeSession:
        gateway = self.get_gateway(gateway_type)
        _assert_live_keys_in_production(gateway.gateway_type)
        return await gateway.initiate_charge(amount=amount, currency=currency, metadata=metadata)

    async def verify_charge(
        self,
        gateway_type: str | GatewayType,
        provider_transaction_id: str,
    ) -> ChargeVerification:
        gateway = self.get_gateway(gateway_type)
        return await gateway.verify_charge(provider_transaction_id)

    async def initiate_refund(
        self,
        gateway_type: str | GatewayType,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundOutcome:
        gateway = self.get_gateway(gateway_type)
        _assert_live_keys_in_production(gateway.gateway_type)
        return await gateway.initiate_refund(
            provider_transaction_id=provider_transaction_id,
            amount=amount,
            reason=reason,
        )

    async def poll_charge(
        self,
        gateway_type: str | GatewayType,
        provider_transaction_id: str,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> ChargeVerification:
        """Poll a charge until it leaves ``pending`` or attempts run out.

        Transient gateway errors are retried with the same backoff; the
        last error is raised when every attempt failed. Returns the last
        verification, which may still be pending.
        """
        max_attempts = max_attempts or settings.charge_poll_max_attempts
        last_error: PaymentGatewayError | None = None
        verification: ChargeVerification | None = None

        for attempt in range(max_attempts):
            try:
                verification = await self.verify_charge(gateway_type, provider_transaction_id)
                last_error = None
                if verification.status != ChargeStatus.PENDING:
                    return verification
            except PaymentGatewayError as e:
                if not e.retryable:
                    raise
                last_error = e
                logger.warning(
                    f"Charge verification attempt {attempt + 1}/{max_attempts} failed "
                    f"for {provider_transaction_id}: {e.detail}"
                )

            if attempt < max_attempts - 1:
                await asyncio.sleep(backoff_delay(attempt, base=base_delay))

        if verification is None and last_error is not None:
            raise last_error
        return verification
