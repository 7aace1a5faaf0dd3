"""Tests for payment gateway adapters and the gateway service."""

import json
from types import SimpleNamespace

import httpx
import pytest
import stripe

from loc3w.config import settings
from loc3w.core.exceptions import PaymentGatewayError, ValidationError
from loc3w.gateways.base import ChargeStatus, ChargeVerification, GatewayType, RefundStatus
from loc3w.gateways.kkiapay import KkiapayGateway
from loc3w.gateways.stripe_gateway import StripeGateway
from loc3w.services.gateway_service import GatewayService, backoff_delay

from conftest import FakeGateway


def kkiapay_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return KkiapayGateway(client=client, public_key="pk_test", secret="sk_test")


# ==================== KKIAPAY ====================


async def test_kkiapay_initialize_checkout():
    """Test a checkout is opened with the amount and API keys."""
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"checkout_url": "https://kkiapay.me/pay/abc", "transaction_id": 4242}
        )

    session = await kkiapay_with(handler).initiate_charge(137700, "xof", {"booking_id": "b-1"})

    assert session.provider_transaction_id == "4242"
    assert session.checkout_url == "https://kkiapay.me/pay/abc"
    assert seen["url"] == "https://sandbox-api.kkiapay.me/v1/payment/initialize"
    assert seen["headers"]["X-API-KEY"] == "pk_test"
    assert seen["body"]["amount"] == 137700
    assert seen["body"]["currency"] == "XOF"


@pytest.mark.parametrize(
    "raw_status, expected",
    [
        ("SUCCESS", ChargeStatus.COMPLETED),
        ("PENDING", ChargeStatus.PENDING),
        ("failed", ChargeStatus.FAILED),
        ("EXPIRED", ChargeStatus.FAILED),
    ],
)
async def test_kkiapay_status_mapping(raw_status, expected):
    """Test provider statuses map onto charge statuses."""

    def handler(request):
        assert request.url.path == "/v1/payment/status/4242"
        return httpx.Response(200, json={"status": raw_status, "amount": "137700"})

    verification = await kkiapay_with(handler).verify_charge("4242")

    assert verification.status == expected
    assert verification.amount == 137700


async def test_kkiapay_unknown_status_is_an_error():
    """Test an unrecognised status is never read as success."""
    gateway = kkiapay_with(lambda request: httpx.Response(200, json={"status": "MAYBE"}))

    with pytest.raises(PaymentGatewayError):
        await gateway.verify_charge("4242")


async def test_kkiapay_server_error_is_retryable():
    """Test 5xx answers are reported as transient."""
    gateway = kkiapay_with(lambda request: httpx.Response(503))

    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.verify_charge("4242")

    assert exc_info.value.retryable
    assert exc_info.value.status_code == 502


async def test_kkiapay_client_error_is_not_retryable():
    """Test 4xx answers are reported as permanent."""
    gateway = kkiapay_with(lambda request: httpx.Response(401, json={"error": "bad key"}))

    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.initiate_charge(5000, "XOF")

    assert not exc_info.value.retryable


async def test_kkiapay_network_error():
    """Test transport failures surface as retryable gateway errors."""

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentGatewayError) as exc_info:
        await kkiapay_with(handler).verify_charge("4242")

    assert exc_info.value.retryable


async def test_kkiapay_malformed_response():
    """Test non-JSON and incomplete answers are rejected."""
    garbage = kkiapay_with(lambda request: httpx.Response(200, text="<html>oops</html>"))
    incomplete = kkiapay_with(lambda request: httpx.Response(200, json={"transaction_id": 1}))

    with pytest.raises(PaymentGatewayError):
        await garbage.verify_charge("4242")
    with pytest.raises(PaymentGatewayError):
        await incomplete.initiate_charge(5000, "XOF")


async def test_kkiapay_refund():
    """Test refunds post to the transaction refund endpoint."""

    def handler(request):
        assert request.url.path == "/api/v1/transactions/4242/refund"
        return httpx.Response(200, json={"status": "SUCCESS", "refund_id": "r-9"})

    outcome = await kkiapay_with(handler).initiate_refund("4242", 137700, "Refus")

    assert outcome.status == RefundStatus.COMPLETED
    assert outcome.refund_id == "r-9"
    assert outcome.acknowledged


async def test_kkiapay_requires_credentials():
    """Test missing keys fail without calling the provider."""
    gateway = KkiapayGateway(client=httpx.AsyncClient(), public_key="", secret="")
    gateway.public_key = None

    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.verify_charge("4242")

    assert not exc_info.value.retryable


# ==================== STRIPE ====================


async def test_stripe_checkout_session(monkeypatch):
    """Test a card checkout creates a Stripe Checkout Session."""
    calls = {}

    def fake_create(**kwargs):
        calls.update(kwargs)
        return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    session = await StripeGateway(secret_key="sk_test_1").initiate_charge(
        137700, "XOF", {"booking_id": "b-1"}
    )

    assert session.provider_transaction_id == "cs_test_1"
    assert calls["line_items"][0]["price_data"]["unit_amount"] == 137700
    assert calls["line_items"][0]["price_data"]["currency"] == "xof"
    assert calls["metadata"] == {"booking_id": "b-1"}


@pytest.mark.parametrize(
    "session_status, payment_status, expected",
    [
        ("complete", "paid", ChargeStatus.COMPLETED),
        ("open", "unpaid", ChargeStatus.PENDING),
        ("expired", "unpaid", ChargeStatus.FAILED),
    ],
)
async def test_stripe_verify_maps_session_state(monkeypatch, session_status, payment_status, expected):
    """Test Checkout Session state maps onto charge statuses."""
    session = SimpleNamespace(
        status=session_status,
        payment_status=payment_status,
        payment_intent="pi_1",
        amount_total=137700,
    )
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", lambda session_id: session)

    verification = await StripeGateway(secret_key="sk_test_1").verify_charge("cs_test_1")

    assert verification.status == expected
    assert verification.amount == 137700


async def test_stripe_error_becomes_gateway_error(monkeypatch):
    """Test Stripe API errors are wrapped."""

    def fail(session_id):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.checkout.Session, "retrieve", fail)

    with pytest.raises(PaymentGatewayError):
        await StripeGateway(secret_key="sk_test_1").verify_charge("cs_test_1")


async def test_stripe_requires_secret_key():
    """Test an unconfigured Stripe gateway refuses to run."""
    gateway = StripeGateway()
    gateway.secret_key = None

    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.initiate_charge(5000, "XOF")

    assert not exc_info.value.retryable


def test_stripe_webhook_without_secret_is_rejected():
    """Test webhooks are not trusted when no signing secret is set."""
    gateway = StripeGateway()
    gateway.webhook_secret = None

    assert gateway.verify_webhook(b"{}", "t=1,v1=abc") is None


# ==================== GATEWAY SERVICE ====================


class ScriptedGateway(FakeGateway):
    """Gateway whose verifications follow a fixed script."""

    def __init__(self, script):
        super().__init__(GatewayType.KKIAPAY)
        self.script = list(script)
        self.calls = 0

    async def verify_charge(self, provider_transaction_id):
        self.calls += 1
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return ChargeVerification(status=step, amount=5000)


async def test_poll_charge_until_settled():
    """Test polling stops at the first settled status."""
    gateway = ScriptedGateway([ChargeStatus.PENDING, ChargeStatus.PENDING, ChargeStatus.COMPLETED])
    service = GatewayService({GatewayType.KKIAPAY: gateway})

    verification = await service.poll_charge("kkiapay", "tx-1", max_attempts=5, base_delay=0)

    assert verification.status == ChargeStatus.COMPLETED
    assert gateway.calls == 3


async def test_poll_charge_retries_transient_errors():
    """Test transient provider errors are retried."""
    gateway = ScriptedGateway([PaymentGatewayError("kkiapay", "timeout"), ChargeStatus.FAILED])
    service = GatewayService({GatewayType.KKIAPAY: gateway})

    verification = await service.poll_charge("kkiapay", "tx-1", max_attempts=3, base_delay=0)

    assert verification.status == ChargeStatus.FAILED


async def test_poll_charge_stops_on_permanent_error():
    """Test a non-retryable error is raised immediately."""
    gateway = ScriptedGateway(
        [PaymentGatewayError("kkiapay", "bad key", retryable=False), ChargeStatus.COMPLETED]
    )
    service = GatewayService({GatewayType.KKIAPAY: gateway})

    with pytest.raises(PaymentGatewayError):
        await service.poll_charge("kkiapay", "tx-1", max_attempts=3, base_delay=0)
    assert gateway.calls == 1


async def test_poll_charge_returns_pending_when_exhausted():
    """Test running out of attempts returns the last pending verification."""
    gateway = ScriptedGateway([ChargeStatus.PENDING] * 3)
    service = GatewayService({GatewayType.KKIAPAY: gateway})

    verification = await service.poll_charge("kkiapay", "tx-1", max_attempts=3, base_delay=0)

    assert verification.status == ChargeStatus.PENDING


async def test_poll_charge_raises_when_every_attempt_failed():
    """Test the last error is raised when no verification succeeded."""
    gateway = ScriptedGateway([PaymentGatewayError("kkiapay", "timeout")] * 2)
    service = GatewayService({GatewayType.KKIAPAY: gateway})

    with pytest.raises(PaymentGatewayError):
        await service.poll_charge("kkiapay", "tx-1", max_attempts=2, base_delay=0)


async def test_live_stripe_key_blocked_outside_production(monkeypatch):
    """Test live Stripe keys are refused in development with a permanent error."""
    gateway = FakeGateway(GatewayType.STRIPE)
    service = GatewayService({GatewayType.STRIPE: gateway})
    monkeypatch.setattr(settings, "environment", "development")
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_live_123")

    with pytest.raises(PaymentGatewayError) as exc:
        await service.initiate_charge("stripe", 5000, "XOF")
    assert not exc.value.retryable

    with pytest.raises(PaymentGatewayError) as exc:
        await service.initiate_refund("stripe", "cs_1", 5000, "test")
    assert not exc.value.retryable
    assert gateway.charges == {}
    assert gateway.refunds == []


async def test_live_stripe_key_allowed_in_production(monkeypatch):
    """Test live Stripe keys pass the guard in production."""
    gateway = FakeGateway(GatewayType.STRIPE)
    service = GatewayService({GatewayType.STRIPE: gateway})
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_live_123")

    session = await service.initiate_charge("stripe", 5000, "XOF")

    assert session.provider_transaction_id in gateway.charges


def test_provider_for_methods():
    """Test each external method maps to its provider."""
    assert GatewayService.provider_for("card") == GatewayType.STRIPE
    assert GatewayService.provider_for("mobile_money") == GatewayType.KKIAPAY
    with pytest.raises(ValidationError):
        GatewayService.provider_for("wallet")
    with pytest.raises(ValidationError):
        GatewayService.provider_for("cheque")


def test_unknown_provider_rejected():
    """Test unsupported providers are refused."""
    with pytest.raises(ValidationError):
        GatewayService().get_gateway("paypal")


def test_backoff_delay_grows_and_caps():
    """Test backoff doubles per attempt up to the cap."""
    assert backoff_delay(0, base=1, cap=30, jitter=False) == 1
    assert backoff_delay(3, base=1, cap=30, jitter=False) == 8
    assert backoff_delay(10, base=1, cap=30, jitter=False) == 30
    for attempt in range(6):
        delay = backoff_delay(attempt, base=1, cap=30)
        assert min(30, 2 ** attempt) / 2 <= delay <= min(30, 2 ** attempt)
