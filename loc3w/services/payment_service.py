"""External charges: booking checkouts and wallet recharges.

A charge is never trusted because a client or a callback says it succeeded:
``confirm_charge`` always asks the provider first.
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.config import settings
from loc3w.core.exceptions import (
    AuthorizationError,
    InvalidBookingStatus,
    NotFoundError,
    PaymentGatewayError,
    ValidationError,
)
from loc3w.domain.payment_state import assert_charge_transition
from loc3w.gateways.base import ChargeStatus, PaymentMethod
from loc3w.models.booking import Booking
from loc3w.models.payment import Payment
from loc3w.services.booking_service import BookingLifecycle
from loc3w.services.commission_service import CommissionEngine
from loc3w.services.gateway_service import GatewayService
from loc3w.services.notification_service import NotificationService
from loc3w.services.wallet_service import WalletLedger

logger = logging.getLogger(__name__)


class PaymentService:
    """Coordinates gateways, the booking lifecycle and the wallet ledger."""

    def __init__(
        self,
        db: AsyncSession,
        gateways: GatewayService,
        lifecycle: BookingLifecycle,
        ledger: WalletLedger,
        commission: CommissionEngine,
        notifier: NotificationService,
    ):
        self.db = db
        self.gateways = gateways
        self.lifecycle = lifecycle
        self.ledger = ledger
        self.commission = commission
        self.notifier = notifier

    async def get_payment(self, payment_id: UUID, user_id: UUID) -> Payment:
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError("Payment", str(payment_id))
        if payment.user_id != user_id:
            raise AuthorizationError("You don't have access to this payment")
        return payment

    async def _payment_by_transaction(self, provider_transaction_id: str) -> Payment:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.provider_transaction_id == provider_transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise NotFoundError("Payment", provider_transaction_id)
        return payment

    # ==================== BOOKING PAYMENTS ====================

    async def pay_with_wallet(self, booking_id: UUID, renter_id: UUID) -> Booking:
        booking = await self.lifecycle.get_booking(booking_id, renter_id)
        if booking.renter_id != renter_id:
            raise AuthorizationError("Only the renter can pay for this booking")
        return await self.lifecycle.capture_payment(booking_id, PaymentMethod.WALLET.value)

    async def start_booking_checkout(
        self,
        booking_id: UUID,
        renter_id: UUID,
        method: str,
    ) -> Payment:
        """Open a provider checkout for a requested booking.

        An existing pending checkout with the same provider is reused.
        """
        provider = self.gateways.provider_for(method)
        booking = await self.lifecycle.get_booking(booking_id, renter_id)
        if booking.renter_id != renter_id:
            raise AuthorizationError("Only the renter can pay for this booking")
        if booking.status != "requested" or booking.payment_status != "unpaid":
            raise InvalidBookingStatus("This booking is not awaiting payment")

        result = await self.db.execute(
            select(Payment).where(
                Payment.booking_id == booking.id,
                Payment.provider == provider.value,
                Payment.status == "pending",
            )
        )
        existing = result.scalars().first()
        if existing is not None:
            return existing

        session = await self.gateways.initiate_charge(
            provider,
            amount=booking.amount_charged,
            currency=booking.currency,
            metadata={
                "purpose": "booking",
                "booking_id": str(booking.id),
                "user_id": str(renter_id),
                "description": f"Location {booking.booking_number}",
            },
        )
        payment = Payment(
            purpose="booking",
            booking_id=booking.id,
            user_id=renter_id,
            amount=booking.amount_charged,
            currency=booking.currency,
            provider=provider.value,
            method=PaymentMethod(method).value,
            provider_transaction_id=session.provider_transaction_id,
            checkout_url=session.checkout_url,
            gateway_response=session.raw_response,
            status="pending",
        )
        self.db.add(payment)
        await self.db.flush()

        logger.info(
            f"Checkout {session.provider_transaction_id} opened on {provider.value} "
            f"for booking {booking.booking_number}: {booking.amount_charged}"
        )
        return payment

    # ==================== WALLET RECHARGE ====================

    async def start_wallet_recharge(self, user_id: UUID, amount: int, method: str) -> Payment:
        """Open a provider checkout that credits the user's wallet once verified."""
        check = self.commission.validate_minimum_amount(amount, settings.minimum_recharge_amount)
        if not check.is_valid:
            raise ValidationError(check.message)

        provider = self.gateways.provider_for(method)
        wallet = await self.ledger.ensure_wallet(user_id)

        session = await self.gateways.initiate_charge(
            provider,
            amount=amount,
            currency=wallet.currency or settings.currency,
            metadata={
                "purpose": "wallet_recharge",
                "user_id": str(user_id),
                "description": f"Recharge de portefeuille - {amount} FCFA",
            },
        )
        payment = Payment(
            purpose="wallet_recharge",
            user_id=user_id,
            amount=amount,
            currency=wallet.currency or settings.currency,
            provider=provider.value,
            method=PaymentMethod(method).value,
            provider_transaction_id=session.provider_transaction_id,
            checkout_url=session.checkout_url,
            gateway_response=session.raw_response,
            status="pending",
        )
        self.db.add(payment)
        await self.ledger.record_transaction(
            wallet.id,
            amount,
            "credit",
            f"Recharge {provider.value} - {amount} FCFA",
            reference_id=session.provider_transaction_id,
            status="pending",
        )
        await self.db.flush()

        logger.info(f"Wallet recharge {session.provider_transaction_id} opened for user {user_id}: {amount}")
        return payment

    # ==================== VERIFICATION ====================

    async def confirm_charge(self, provider_transaction_id: str) -> Payment:
        """Re-verify a charge with its provider and apply the result.

        Safe to call any number of times from redirects, webhooks or the
        poller. A charge still pending is returned unchanged.
        """
        payment = await self._payment_by_transaction(provider_transaction_id)
        if payment.status != "pending":
            return payment

        verification = await self.gateways.verify_charge(payment.provider, provider_transaction_id)

        if verification.status == ChargeStatus.PENDING:
            return payment

        if verification.status == ChargeStatus.FAILED:
            assert_charge_transition(payment.status, "failed")
            payment.status = "failed"
            payment.failed_at = datetime.now(UTC)
            payment.gateway_response = verification.raw_response
            if payment.purpose == "wallet_recharge":
                await self.ledger.fail_transaction(provider_transaction_id)
            await self.db.flush()
            logger.info(f"Charge {provider_transaction_id} failed on {payment.provider}")
            return payment

        if verification.amount is not None and verification.amount < payment.amount:
            logger.error(
                f"Charge {provider_transaction_id} settled {verification.amount}, "
                f"expected {payment.amount}; left pending for review"
            )
            raise ValidationError("Charged amount does not match the expected amount")

        assert_charge_transition(payment.status, "completed")
        payment.status = "completed"
        payment.completed_at = datetime.now(UTC)
        payment.gateway_response = verification.raw_response
        await self.db.flush()
        logger.info(f"Charge {provider_transaction_id} completed on {payment.provider}: {payment.amount}")

        if payment.purpose == "wallet_recharge":
            await self.ledger.complete_transaction(provider_transaction_id)
            await self.notifier.notify(
                payment.user_id,
                NotificationService.WALLET_CREDITED,
                "Portefeuille rechargé",
                f"{payment.amount} FCFA ont été ajoutés à votre portefeuille.",
            )
        else:
            try:
                await self.lifecycle.capture_payment(payment.booking_id, payment.method)
            except InvalidBookingStatus:
                logger.error(
                    f"Charge {provider_transaction_id} completed for booking {payment.booking_id} "
                    "that can no longer be paid; refund it manually"
                )
        return payment

    async def poll_pending(self, older_than: timedelta | None = None, limit: int = 50) -> int:
        """Re-verify pending charges older than the grace period.

        Provider errors are logged and the charge is retried next round.
        """
        older_than = older_than or timedelta(minutes=settings.pending_charge_grace_minutes)
        cutoff = datetime.now(UTC) - older_than
        result = await self.db.execute(
            select(Payment.provider_transaction_id)
            .where(Payment.status == "pending", Payment.created_at < cutoff)
            .order_by(Payment.created_at)
            .limit(limit)
        )

        settled = 0
        for transaction_id in result.scalars().all():
            try:
                payment = await self.confirm_charge(transaction_id)
            except (PaymentGatewayError, ValidationError) as e:
                logger.warning(f"Polling charge {transaction_id} failed: {e.detail}")
                continue
            if payment.status != "pending":
                settled += 1
        return settled
