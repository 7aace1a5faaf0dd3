"""Booking lifecycle.

requested → paid → owner_approved → completed
                 ↘ owner_rejected → refunded
requested → cancelled (unpaid only)

Every transition locks the booking row, validates the move against the
state machine and performs its ledger side effects in the caller's
transaction. Notifications and change-feed events never affect the outcome.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from uuid import UUID

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.config import settings
from loc3w.core.change_feed import ChangeFeed, change_for, queue_change
from loc3w.core.exceptions import (
    AuthorizationError,
    DateConflictError,
    EquipmentNotAvailable,
    InvalidBookingStatus,
    InvariantViolationError,
    NotFoundError,
    PaymentGatewayError,
    RefundFailedError,
    ValidationError,
)
from loc3w.domain.booking_state import assert_booking_transition
from loc3w.domain.payment_state import assert_payment_transition
from loc3w.domain.pricing import calculate_rental_price, rental_days
from loc3w.gateways.base import PaymentMethod
from loc3w.models.booking import Booking
from loc3w.models.dispute import Dispute
from loc3w.models.equipment import Equipment
from loc3w.models.payment import Payment, Refund
from loc3w.services.availability_service import AvailabilityIndex
from loc3w.services.commission_service import CommissionEngine
from loc3w.services.dispute_service import dispute_service
from loc3w.services.gateway_service import GatewayService
from loc3w.services.notification_service import NotificationService
from loc3w.services.wallet_service import WalletLedger
from loc3w.utils.booking_number import generate_booking_number

logger = logging.getLogger(__name__)

# Name of the PostgreSQL exclusion constraint created by the initial migration
OVERLAP_CONSTRAINT = "ex_bookings_no_overlap"

RETURN_CONDITIONS = ("good", "damaged")


@dataclass
class FinalizeOutcome:
    booking: Booking
    dispute: Dispute | None = None


class BookingLifecycle:
    """Owns every booking state transition and its settlement side effects."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: WalletLedger,
        gateways: GatewayService,
        notifier: NotificationService,
        availability: AvailabilityIndex,
        commission: CommissionEngine,
        feed: ChangeFeed | None = None,
    ):
        self.db = db
        self.ledger = ledger
        self.gateways = gateways
        self.notifier = notifier
        self.availability = availability
        self.commission = commission
        self.feed = feed

    # ==================== LOOKUPS ====================

    async def _lock(self, booking_id: UUID) -> Booking:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def get_booking(self, booking_id: UUID, user_id: UUID, is_admin: bool = False) -> Booking:
        result = await self.db.execute(select(Booking).where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        if not is_admin and user_id not in (booking.renter_id, booking.owner_id):
            raise AuthorizationError("You don't have access to this booking")
        return booking

    async def list_for_user(
        self,
        user_id: UUID,
        role: str = "renter",
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Booking]:
        if role == "renter":
            query = select(Booking).where(Booking.renter_id == user_id)
        elif role == "owner":
            query = select(Booking).where(Booking.owner_id == user_id)
        else:
            raise ValidationError("Role must be 'renter' or 'owner'")
        if status:
            query = query.where(Booking.status == status)

        result = await self.db.execute(
            query.order_by(Booking.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    @staticmethod
    def _assert_owner(booking: Booking, owner_id: UUID) -> None:
        if booking.owner_id != owner_id:
            raise AuthorizationError("Only the equipment owner can do this")

    def _changed(self, booking: Booking) -> None:
        queue_change(self.db, self.feed, change_for(booking))

    # ==================== CREATE ====================

    async def create(
        self,
        equipment_id: UUID,
        renter_id: UUID,
        start_date: date,
        end_date: date,
    ) -> Booking:
        """Create a ``requested`` booking after checking the dates are free.

        Raises:
            DateConflictError: the range overlaps an active booking
            AvailabilityUnknownError: availability could not be read
        """
        days = rental_days(start_date, end_date)
        if start_date < datetime.now(UTC).date():
            raise ValidationError("Start date cannot be in the past")

        # Serialises concurrent requests for the same equipment
        result = await self.db.execute(
            select(Equipment).where(Equipment.id == equipment_id).with_for_update()
        )
        equipment = result.scalar_one_or_none()
        if equipment is None:
            raise NotFoundError("Equipment", str(equipment_id))
        if not equipment.is_bookable:
            raise EquipmentNotAvailable()
        if equipment.owner_id == renter_id:
            raise ValidationError("You cannot book your own equipment")
        if equipment.daily_price <= 0:
            raise EquipmentNotAvailable("This equipment has no rental price")

        ranges = await self.availability.blocked_ranges(equipment.id)
        if any(r.overlaps(start_date, end_date) for r in ranges):
            raise DateConflictError()

        subtotal = calculate_rental_price(equipment.daily_price, equipment.weekly_price, days)
        breakdown = self.commission.calculate_commission(subtotal)

        booking = Booking(
            booking_number=await generate_booking_number(self.db),
            equipment_id=equipment.id,
            renter_id=renter_id,
            owner_id=equipment.owner_id,
            start_date=start_date,
            end_date=end_date,
            rental_days=days,
            daily_price=equipment.daily_price,
            weekly_price=equipment.weekly_price,
            total_price=breakdown.subtotal,
            commission_amount=breakdown.commission,
            platform_fee=breakdown.platform_fee,
            owner_amount=breakdown.owner_amount,
            amount_charged=breakdown.total,
            deposit_amount=equipment.deposit_amount or 0,
            currency=equipment.currency or settings.currency,
            status="requested",
            payment_status="unpaid",
        )
        self.db.add(booking)
        try:
            await self.db.flush()
        except IntegrityError as e:
            if OVERLAP_CONSTRAINT in str(e.orig):
                logger.info(f"Overlap rejected by storage for equipment {equipment.id}")
                raise DateConflictError() from e
            raise

        logger.info(
            f"Booking {booking.booking_number} requested: equipment {equipment.id}, "
            f"{start_date}..{end_date} ({days} days), total {breakdown.total}"
        )
        self._changed(booking)
        await self.notifier.notify(
            booking.owner_id,
            NotificationService.BOOKING_REQUEST,
            "Nouvelle demande de location",
            f"Demande {booking.booking_number} du {start_date} au {end_date}.",
            booking_id=booking.id,
        )
        return booking

    # ==================== PAYMENT ====================

    async def capture_payment(self, booking_id: UUID, method: str) -> Booking:
        """Mark a requested booking paid. Repeated captures are no-ops.

        For wallet payments the renter is debited the full amount first.

        Raises:
            InsufficientFundsError: wallet balance too low; nothing is written
        """
        try:
            method = PaymentMethod(method)
        except ValueError as e:
            raise ValidationError(f"Unknown payment method: {method}") from e

        booking = await self._lock(booking_id)
        if booking.payment_status != "unpaid":
            logger.info(f"Booking {booking.booking_number} already {booking.payment_status}; capture skipped")
            return booking

        assert_booking_transition(booking.status, "paid")
        assert_payment_transition(booking.payment_status, "paid")

        if method == PaymentMethod.WALLET:
            wallet = await self.ledger.ensure_wallet(booking.renter_id)
            await self.ledger.record_transaction(
                wallet.id,
                -booking.amount_charged,
                "debit",
                f"Paiement de la réservation {booking.booking_number}",
                booking_id=booking.id,
            )

        booking.status = "paid"
        booking.payment_status = "paid"
        booking.payment_method = method.value
        booking.paid_at = datetime.now(UTC)
        await self.db.flush()

        logger.info(f"Booking {booking.booking_number} paid by {method.value}: {booking.amount_charged}")
        self._changed(booking)
        await self.notifier.notify(
            booking.owner_id,
            NotificationService.BOOKING_PAID,
            "Réservation payée",
            f"La réservation {booking.booking_number} est payée et attend votre validation.",
            booking_id=booking.id,
        )
        return booking

    # ==================== OWNER DECISION ====================

    async def owner_approve(self, booking_id: UUID, owner_id: UUID) -> Booking:
        """Approve a paid booking and settle it.

        Owner is credited the gross subtotal and debited the commission; the
        platform account receives commission plus platform fee.
        """
        booking = await self._lock(booking_id)
        self._assert_owner(booking, owner_id)
        assert_booking_transition(booking.status, "owner_approved")

        breakdown = self.commission.calculate_commission(booking.total_price)
        recorded = (
            booking.commission_amount,
            booking.platform_fee,
            booking.owner_amount,
            booking.amount_charged,
        )
        expected = (
            breakdown.commission,
            breakdown.platform_fee,
            breakdown.owner_amount,
            breakdown.total,
        )
        if recorded != expected:
            logger.critical(
                f"Booking {booking.booking_number} amounts {recorded} do not match settlement {expected}"
            )
            raise InvariantViolationError(
                f"Booking {booking.booking_number} amounts do not match its settlement"
            )

        number = booking.booking_number
        await self.ledger.record_for_user(
            booking.owner_id,
            breakdown.subtotal,
            "credit",
            f"Location {number}",
            booking_id=booking.id,
        )
        if breakdown.commission:
            await self.ledger.record_for_user(
                booking.owner_id,
                -breakdown.commission,
                "commission",
                f"Commission 3W-LOC sur {number}",
                booking_id=booking.id,
            )
        platform_revenue = breakdown.commission + breakdown.platform_fee
        if platform_revenue:
            await self.ledger.record_for_user(
                settings.platform_account_id,
                platform_revenue,
                "credit",
                f"Commission et frais de service {number}",
                booking_id=booking.id,
            )

        booking.status = "owner_approved"
        booking.approved_at = datetime.now(UTC)
        await self.db.flush()

        logger.info(
            f"Booking {number} approved: owner +{breakdown.owner_amount}, platform +{platform_revenue}"
        )
        self._changed(booking)
        await self.notifier.notify(
            booking.renter_id,
            NotificationService.BOOKING_APPROVED,
            "Réservation acceptée",
            f"Le propriétaire a accepté la réservation {number}.",
            booking_id=booking.id,
        )
        return booking

    async def owner_reject(self, booking_id: UUID, owner_id: UUID, reason: str) -> Booking:
        """Reject a paid booking and refund the renter.

        A failed refund is recorded for manual review; the rejection itself
        still stands and no error reaches the caller.
        """
        booking = await self._lock(booking_id)
        self._assert_owner(booking, owner_id)
        assert_booking_transition(booking.status, "owner_rejected")

        booking.status = "owner_rejected"
        booking.rejection_reason = reason
        booking.rejected_at = datetime.now(UTC)
        await self.db.flush()
        logger.info(f"Booking {booking.booking_number} rejected by owner: {reason}")

        await self.notifier.notify(
            booking.renter_id,
            NotificationService.BOOKING_REJECTED,
            "Réservation refusée",
            f"Le propriétaire a refusé la réservation {booking.booking_number}.",
            booking_id=booking.id,
        )

        if booking.payment_status == "paid":
            await self._attempt_refund(booking, reason)

        self._changed(booking)
        return booking

    async def _attempt_refund(self, booking: Booking, reason: str) -> Refund:
        try:
            return await self._refund(booking, reason)
        except RefundFailedError as e:
            logger.error(f"{e.detail}; flagged for manual review", exc_info=True)
            refund = Refund(
                booking_id=booking.id,
                payment_id=None,
                amount=booking.amount_charged,
                reason=reason,
                status="failed",
                error_message=e.detail,
                needs_manual_review=True,
                processed_at=datetime.now(UTC),
            )
            self.db.add(refund)
            booking.refund_review_required = True
            await self.db.flush()
            await self.notifier.notify(
                booking.renter_id,
                NotificationService.REFUND_FAILED,
                "Remboursement en cours de traitement",
                f"Le remboursement de {booking.booking_number} est retardé; notre équipe s'en occupe.",
                booking_id=booking.id,
            )
            return refund

    async def _captured_payment(self, booking: Booking) -> Payment | None:
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.booking_id == booking.id,
                Payment.purpose == "booking",
                Payment.status == "completed",
            )
            .with_for_update()
        )
        return result.scalars().first()

    async def _refund(self, booking: Booking, reason: str) -> Refund:
        """Return the renter's money through the channel they paid with.

        Raises:
            RefundFailedError: the refund was not acknowledged
        """
        booking_ref = str(booking.id)
        now = datetime.now(UTC)

        if booking.payment_method == PaymentMethod.WALLET.value:
            try:
                wallet = await self.ledger.ensure_wallet(booking.renter_id)
                await self.ledger.record_transaction(
                    wallet.id,
                    booking.amount_charged,
                    "refund",
                    f"Remboursement de la réservation {booking.booking_number}",
                    booking_id=booking.id,
                )
            except InvariantViolationError as e:
                raise RefundFailedError(booking_ref, e.detail) from e
            refund = Refund(
                booking_id=booking.id,
                amount=booking.amount_charged,
                reason=reason,
                status="completed",
                processed_at=now,
            )
        else:
            payment = await self._captured_payment(booking)
            if payment is None:
                raise RefundFailedError(booking_ref, "no captured payment on record")
            try:
                outcome = await self.gateways.initiate_refund(
                    payment.provider,
                    payment.provider_transaction_id,
                    booking.amount_charged,
                    reason,
                )
            except PaymentGatewayError as e:
                raise RefundFailedError(booking_ref, e.detail) from e
            if not outcome.acknowledged:
                raise RefundFailedError(
                    booking_ref, outcome.error_message or "provider declined the refund"
                )

            refund = Refund(
                booking_id=booking.id,
                payment_id=payment.id,
                amount=booking.amount_charged,
                reason=reason,
                status=outcome.status.value,
                provider_refund_id=outcome.refund_id,
                processed_at=now,
            )
            payment.status = "refunded"

        self.db.add(refund)
        assert_payment_transition(booking.payment_status, "refunded")
        assert_booking_transition(booking.status, "refunded")
        booking.payment_status = "refunded"
        booking.status = "refunded"
        booking.refunded_at = now
        booking.refund_review_required = False

        # Earlier failed attempts are settled now
        await self.db.execute(
            update(Refund)
            .where(Refund.booking_id == booking.id, Refund.status == "failed")
            .values(needs_manual_review=False)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        logger.info(
            f"Booking {booking.booking_number} refunded {booking.amount_charged} "
            f"via {booking.payment_method} ({refund.status})"
        )
        await self.notifier.notify(
            booking.renter_id,
            NotificationService.REFUND_COMPLETED,
            "Remboursement effectué",
            f"{booking.amount_charged} FCFA remboursés pour {booking.booking_number}.",
            booking_id=booking.id,
        )
        return refund

    async def retry_refund(self, booking_id: UUID) -> Refund:
        """Operator retry of a refund that failed after rejection.

        Raises:
            RefundFailedError: the refund failed again
        """
        booking = await self._lock(booking_id)
        if booking.status != "owner_rejected" or booking.payment_status != "paid":
            raise InvalidBookingStatus(
                f"Booking {booking.booking_number} has no outstanding refund"
            )
        refund = await self._refund(
            booking, booking.rejection_reason or "Réservation refusée par le propriétaire"
        )
        self._changed(booking)
        return refund

    async def pending_refunds(self, limit: int = 50) -> list[UUID]:
        """Rejected bookings whose refund is still outstanding."""
        result = await self.db.execute(
            select(Booking.id)
            .where(Booking.status == "owner_rejected", Booking.payment_status == "paid")
            .order_by(Booking.rejected_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== RETURN ====================

    async def finalize(
        self,
        booking_id: UUID,
        owner_id: UUID,
        condition: str,
        notes: str | None = None,
    ) -> FinalizeOutcome:
        """Close an approved booking once the equipment is returned.

        Damaged equipment opens a dispute and leaves the booking approved.
        """
        if condition not in RETURN_CONDITIONS:
            raise ValidationError(f"Condition must be one of {', '.join(RETURN_CONDITIONS)}")

        booking = await self._lock(booking_id)
        self._assert_owner(booking, owner_id)
        assert_booking_transition(booking.status, "completed")

        if condition == "damaged":
            dispute = await dispute_service.open_dispute(
                self.db,
                booking_id=booking.id,
                raised_by=owner_id,
                against_id=booking.renter_id,
                category="equipment_damage",
                description=notes or "Matériel rendu endommagé",
            )
            await self.notifier.notify(
                booking.renter_id,
                NotificationService.DISPUTE_OPENED,
                "Litige ouvert",
                f"Le propriétaire a signalé un dommage sur {booking.booking_number}.",
                booking_id=booking.id,
            )
            return FinalizeOutcome(booking=booking, dispute=dispute)

        booking.status = "completed"
        booking.completed_at = datetime.now(UTC)
        await self.db.flush()

        logger.info(f"Booking {booking.booking_number} completed")
        self._changed(booking)
        await self.notifier.notify(
            booking.renter_id,
            NotificationService.BOOKING_COMPLETED,
            "Location terminée",
            f"La location {booking.booking_number} est terminée.",
            booking_id=booking.id,
        )
        return FinalizeOutcome(booking=booking)

    # ==================== CANCELLATION ====================

    async def cancel(self, booking_id: UUID, renter_id: UUID) -> Booking:
        """Withdraw an unpaid request."""
        booking = await self._lock(booking_id)
        if booking.renter_id != renter_id:
            raise AuthorizationError("Only the renter can cancel this request")
        assert_booking_transition(booking.status, "cancelled")

        booking.status = "cancelled"
        booking.cancelled_at = datetime.now(UTC)
        await self.db.flush()

        logger.info(f"Booking {booking.booking_number} cancelled by renter")
        self._changed(booking)
        await self.notifier.notify(
            booking.owner_id,
            NotificationService.BOOKING_CANCELLED,
            "Demande annulée",
            f"Le locataire a annulé la demande {booking.booking_number}.",
            booking_id=booking.id,
        )
        return booking

    async def expire_unpaid(self, older_than: timedelta) -> int:
        """Cancel stale unpaid requests that have no charge in flight."""
        cutoff = datetime.now(UTC) - older_than
        charge_in_flight = exists().where(
            Payment.booking_id == Booking.id,
            Payment.status == "pending",
        )
        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.status == "requested",
                Booking.payment_status == "unpaid",
                Booking.created_at < cutoff,
                ~charge_in_flight,
            )
            .with_for_update(skip_locked=True)
        )
        bookings = list(result.scalars().all())

        now = datetime.now(UTC)
        for booking in bookings:
            booking.status = "cancelled"
            booking.cancelled_at = now
            self._changed(booking)
        await self.db.flush()

        if bookings:
            logger.info(f"Expired {len(bookings)} unpaid booking requests")
        return len(bookings)
