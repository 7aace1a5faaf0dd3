"""Tests for checkouts, wallet recharges and charge verification."""

import logging
from datetime import UTC, datetime, timedelta

import pytest

from loc3w.core.exceptions import (
    AuthorizationError,
    InvalidBookingStatus,
    NotFoundError,
    ValidationError,
)
from loc3w.gateways.base import ChargeStatus
from loc3w.services.notification_service import NotificationService


# ==================== BOOKING CHECKOUT ====================


async def test_checkout_waits_for_provider_confirmation(payments, lifecycle, kkiapay, equipment, renter, future):
    """Test a checkout only pays the booking once the provider confirms."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))

    payment = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")

    assert payment.status == "pending"
    assert payment.provider == "kkiapay"
    assert payment.amount == booking.amount_charged
    assert payment.checkout_url.startswith("https://pay.test/")
    assert kkiapay.charges[payment.provider_transaction_id]["amount"] == booking.amount_charged

    # Still pending at the provider
    await payments.confirm_charge(payment.provider_transaction_id)
    assert payment.status == "pending"
    assert booking.status == "requested"

    kkiapay.settle(payment.provider_transaction_id)
    await payments.confirm_charge(payment.provider_transaction_id)

    assert payment.status == "completed"
    assert payment.completed_at is not None
    assert booking.status == "paid"
    assert booking.payment_method == "mobile_money"


async def test_card_checkout_uses_stripe(payments, lifecycle, stripe_fake, equipment, renter, future):
    """Test card payments are routed to Stripe."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))

    payment = await payments.start_booking_checkout(booking.id, renter.id, "card")

    assert payment.provider == "stripe"
    assert payment.method == "card"
    assert payment.provider_transaction_id in stripe_fake.charges


async def test_checkout_reuses_pending_session(payments, lifecycle, kkiapay, equipment, renter, future):
    """Test a second checkout returns the session already open."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))

    first = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")
    second = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")

    assert second.id == first.id
    assert len(kkiapay.charges) == 1


async def test_checkout_rejects_wallet_method(payments, lifecycle, equipment, renter, future):
    """Test the wallet is not an external checkout method."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))

    with pytest.raises(ValidationError):
        await payments.start_booking_checkout(booking.id, renter.id, "wallet")


async def test_checkout_requires_unpaid_booking(payments, lifecycle, equipment, funded_renter, future):
    """Test a paid booking cannot be checked out again."""
    booking = await lifecycle.create(equipment.id, funded_renter.id, future(3), future(4))
    await payments.pay_with_wallet(booking.id, funded_renter.id)

    with pytest.raises(InvalidBookingStatus):
        await payments.start_booking_checkout(booking.id, funded_renter.id, "mobile_money")


async def test_only_renter_can_pay(payments, lifecycle, equipment, renter, owner, future):
    """Test the owner cannot pay the renter's booking."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))

    with pytest.raises(AuthorizationError):
        await payments.pay_with_wallet(booking.id, owner.id)
    with pytest.raises(AuthorizationError):
        await payments.start_booking_checkout(booking.id, owner.id, "card")


async def test_failed_charge_leaves_booking_unpaid(payments, lifecycle, kkiapay, equipment, renter, future):
    """Test a declined charge is recorded and the booking stays payable."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))
    payment = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")
    kkiapay.settle(payment.provider_transaction_id, status=ChargeStatus.FAILED)

    await payments.confirm_charge(payment.provider_transaction_id)

    assert payment.status == "failed"
    assert payment.failed_at is not None
    assert booking.status == "requested"
    retry = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")
    assert retry.id != payment.id


async def test_underpaid_charge_is_refused(payments, lifecycle, kkiapay, equipment, renter, future):
    """Test a settled amount below the expected one does not pay the booking."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))
    payment = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")
    kkiapay.settle(payment.provider_transaction_id, amount=booking.amount_charged - 1)

    with pytest.raises(ValidationError):
        await payments.confirm_charge(payment.provider_transaction_id)

    assert payment.status == "pending"
    assert booking.status == "requested"


async def test_confirm_is_idempotent(payments, lifecycle, kkiapay, equipment, renter, notifier, future):
    """Test repeated confirmations apply a completed charge once."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))
    payment = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")
    kkiapay.settle(payment.provider_transaction_id)

    await payments.confirm_charge(payment.provider_transaction_id)
    await payments.confirm_charge(payment.provider_transaction_id)

    paid = [n for n in notifier.sent if n["type"] == NotificationService.BOOKING_PAID]
    assert len(paid) == 1


async def test_confirm_unknown_transaction(payments):
    """Test confirming an unknown transaction raises NotFoundError."""
    with pytest.raises(NotFoundError):
        await payments.confirm_charge("kkiapay-tx-404")


async def test_late_charge_for_cancelled_booking_is_logged(
    payments, lifecycle, kkiapay, equipment, renter, future, caplog
):
    """Test a charge completing after cancellation is kept and flagged in the logs."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))
    payment = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")
    await lifecycle.cancel(booking.id, renter.id)
    kkiapay.settle(payment.provider_transaction_id)

    with caplog.at_level(logging.ERROR, logger="loc3w.services.payment_service"):
        await payments.confirm_charge(payment.provider_transaction_id)

    assert payment.status == "completed"
    assert booking.status == "cancelled"
    assert any("refund it manually" in r.getMessage() for r in caplog.records)


# ==================== WALLET RECHARGE ====================


async def test_recharge_credits_wallet_once(payments, ledger, kkiapay, renter, notifier):
    """Test a recharge credits the wallet only after verification, and only once."""
    payment = await payments.start_wallet_recharge(renter.id, 25000, "mobile_money")

    assert payment.purpose == "wallet_recharge"
    assert (await ledger.get_wallet(renter.id)).balance == 0

    kkiapay.settle(payment.provider_transaction_id)
    await payments.confirm_charge(payment.provider_transaction_id)
    await payments.confirm_charge(payment.provider_transaction_id)

    wallet = await ledger.get_wallet(renter.id)
    assert wallet.balance == 25000
    assert (await ledger.verify_balance(wallet.id)).consistent
    assert notifier.types_for(renter.id) == [NotificationService.WALLET_CREDITED]


async def test_failed_recharge_credits_nothing(payments, ledger, kkiapay, renter):
    """Test a failed recharge leaves the balance untouched."""
    payment = await payments.start_wallet_recharge(renter.id, 25000, "mobile_money")
    kkiapay.settle(payment.provider_transaction_id, status=ChargeStatus.FAILED)

    await payments.confirm_charge(payment.provider_transaction_id)

    wallet = await ledger.get_wallet(renter.id)
    assert payment.status == "failed"
    assert wallet.balance == 0
    transactions = await ledger.list_transactions(wallet.id)
    assert [t.status for t in transactions] == ["failed"]


async def test_recharge_below_minimum(payments, renter):
    """Test recharges under the minimum are refused."""
    with pytest.raises(ValidationError):
        await payments.start_wallet_recharge(renter.id, 500, "mobile_money")


# ==================== POLLING ====================


async def test_poll_pending_settles_old_charges(db, payments, lifecycle, kkiapay, equipment, renter, future):
    """Test the poller confirms settled charges past the grace period."""
    first = await lifecycle.create(equipment.id, renter.id, future(3), future(4))
    second = await lifecycle.create(equipment.id, renter.id, future(10), future(11))
    settled = await payments.start_booking_checkout(first.id, renter.id, "mobile_money")
    waiting = await payments.start_booking_checkout(second.id, renter.id, "mobile_money")
    kkiapay.settle(settled.provider_transaction_id)

    long_ago = datetime.now(UTC) - timedelta(hours=1)
    settled.created_at = long_ago
    waiting.created_at = long_ago
    await db.flush()

    count = await payments.poll_pending(older_than=timedelta(minutes=10))

    assert count == 1
    assert first.status == "paid"
    assert second.status == "requested"
    assert waiting.status == "pending"


async def test_poll_pending_ignores_recent_charges(payments, lifecycle, kkiapay, equipment, renter, future):
    """Test charges inside the grace period are left alone."""
    booking = await lifecycle.create(equipment.id, renter.id, future(3), future(4))
    payment = await payments.start_booking_checkout(booking.id, renter.id, "mobile_money")
    kkiapay.settle(payment.provider_transaction_id)

    assert await payments.poll_pending(older_than=timedelta(minutes=10)) == 0
    assert booking.status == "requested"


async def test_get_payment_restricted_to_payer(payments, renter, owner):
    """Test a payment is only visible to the user who made it."""
    payment = await payments.start_wallet_recharge(renter.id, 5000, "mobile_money")

    assert (await payments.get_payment(payment.id, renter.id)).id == payment.id
    with pytest.raises(AuthorizationError):
        await payments.get_payment(payment.id, owner.id)
