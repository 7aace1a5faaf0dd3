"""Wiring of request- or job-scoped services around one session."""

from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.core.change_feed import ChangeFeed
from loc3w.services.availability_service import AvailabilityIndex
from loc3w.services.booking_service import BookingLifecycle
from loc3w.services.commission_service import commission_engine
from loc3w.services.gateway_service import GatewayService
from loc3w.services.notification_service import NotificationService
from loc3w.services.payment_service import PaymentService
from loc3w.services.wallet_service import WalletLedger


def build_lifecycle(
    db: AsyncSession,
    gateways: GatewayService | None = None,
    notifier: NotificationService | None = None,
    feed: ChangeFeed | None = None,
) -> BookingLifecycle:
    return BookingLifecycle(
        db=db,
        ledger=WalletLedger(db),
        gateways=gateways or GatewayService(),
        notifier=notifier or NotificationService(db),
        availability=AvailabilityIndex(db, feed),
        commission=commission_engine,
        feed=feed,
    )


def build_payment_service(
    db: AsyncSession,
    gateways: GatewayService | None = None,
    notifier: NotificationService | None = None,
    feed: ChangeFeed | None = None,
) -> PaymentService:
    gateways = gateways or GatewayService()
    notifier = notifier or NotificationService(db)
    lifecycle = build_lifecycle(db, gateways=gateways, notifier=notifier, feed=feed)
    return PaymentService(
        db=db,
        gateways=gateways,
        lifecycle=lifecycle,
        ledger=lifecycle.ledger,
        commission=commission_engine,
        notifier=notifier,
    )
