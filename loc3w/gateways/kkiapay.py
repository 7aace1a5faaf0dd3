"""KkiaPay payment gateway adapter (mobile money).

Talks to the KkiaPay REST API over httpx. Sandbox and live hosts are chosen
from settings; non-production environments always use the sandbox.
"""

import logging

import httpx

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

CHARGE_STATUSES = {
    "SUCCESS": ChargeStatus.COMPLETED,
    "PENDING": ChargeStatus.PENDING,
    "INITIATED": ChargeStatus.PENDING,
    "FAILED": ChargeStatus.FAILED,
    "CANCELLED": ChargeStatus.FAILED,
    "EXPIRED": ChargeStatus.FAILED,
}

REFUND_STATUSES = {
    "SUCCESS": RefundStatus.COMPLETED,
    "REFUNDED": RefundStatus.COMPLETED,
    "PENDING": RefundStatus.INITIATED,
    "INITIATED": RefundStatus.INITIATED,
    "FAILED": RefundStatus.FAILED,
}


class KkiapayGateway(PaymentGateway):
    """KkiaPay payment gateway implementation."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        public_key: str | None = None,
        secret: str | None = None,
    ):
        self.public_key = public_key or settings.kkiapay_public_key
        self.private_key = settings.kkiapay_private_key
        self.secret = secret or settings.kkiapay_secret
        self.sandbox = settings.kkiapay_sandbox or settings.environment != "production"
        self.base_url = (
            "https://sandbox-api.kkiapay.me" if self.sandbox else "https://api.kkiapay.me"
        )
        self._client = client

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.KKIAPAY

    def _headers(self) -> dict[str, str]:
        if not self.public_key or not self.secret:
            raise PaymentGatewayError("kkiapay", "KkiaPay credentials not configured", retryable=False)
        headers = {
            "X-API-KEY": self.public_key,
            "X-SECRET-KEY": self.secret,
            "Content-Type": "application/json",
        }
        if self.private_key:
            headers["X-PRIVATE-KEY"] = self.private_key
        return headers

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        headers = self._headers()
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=headers, json=json, timeout=settings.kkiapay_timeout_seconds
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        method, url, headers=headers, json=json, timeout=settings.kkiapay_timeout_seconds
                    )
        except httpx.HTTPError as e:
            logger.warning(f"KkiaPay {method} {path} unreachable: {e}")
            raise PaymentGatewayError("kkiapay", "provider unreachable") from e

        if response.status_code >= 500:
            logger.warning(f"KkiaPay {method} {path} returned {response.status_code}")
            raise PaymentGatewayError("kkiapay", f"API returned {response.status_code}")
        if response.status_code >= 400:
            logger.warning(
                f"KkiaPay {method} {path} rejected ({response.status_code}): {response.text[:500]}"
            )
            raise PaymentGatewayError(
                "kkiapay", f"API returned {response.status_code}", retryable=False
            )

        try:
            return response.json()
        except ValueError as e:
            raise PaymentGatewayError("kkiapay", "malformed response") from e

    async def initiate_charge(
        self,
        amount: int,
        currency: str,
        metadata: dict | None = None,
    ) -> ChargeSession:
        """Initialize a mobile money checkout."""
        metadata = metadata or {}
        data = await self._request(
            "POST",
            "/v1/payment/initialize",
            json={
                "amount": amount,
                "currency": currency.upper(),
                "description": metadata.get("description", f"3W-LOC - {amount} FCFA"),
                "return_url": f"{settings.frontend_url}{settings.payment_success_path}",
                "cancel_url": f"{settings.frontend_url}{settings.payment_cancel_path}",
                "metadata": metadata,
            },
        )

        checkout_url = data.get("checkout_url")
        transaction_id = data.get("transaction_id")
        if not checkout_url or not transaction_id:
            raise PaymentGatewayError("kkiapay", "checkout URL missing from response")

        return ChargeSession(
            checkout_url=checkout_url,
            provider_transaction_id=str(transaction_id),
            raw_response=data,
        )

    async def verify_charge(self, provider_transaction_id: str) -> ChargeVerification:
        data = await self._request("GET", f"/v1/payment/status/{provider_transaction_id}")
        raw_status = str(data.get("status", "")).upper()
        if raw_status not in CHARGE_STATUSES:
            raise PaymentGatewayError("kkiapay", f"unknown charge status '{raw_status}'")

        amount = data.get("amount")
        return ChargeVerification(
            status=CHARGE_STATUSES[raw_status],
            amount=int(amount) if amount is not None else None,
            raw_response=data,
        )

    async def initiate_refund(
        self,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundOutcome:
        data = await self._request(
            "POST",
            f"/api/v1/transactions/{provider_transaction_id}/refund",
            json={"amount": amount, "reason": reason},
        )
        status = REFUND_STATUSES.get(str(data.get("status", "PENDING")).upper(), RefundStatus.INITIATED)
        return RefundOutcome(
            status=status,
            refund_id=data.get("refund_id") or data.get("transaction_id"),
            error_message=data.get("error") if status == RefundStatus.FAILED else None,
            raw_response=data,
        )
