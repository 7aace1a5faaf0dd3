"""Shared pytest fixtures for 3W-LOC tests."""

import itertools
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

import loc3w.models  # noqa: F401
from loc3w.config import settings
from loc3w.core.change_feed import LocalChangeFeed
from loc3w.core.exceptions import PaymentGatewayError
from loc3w.database import Base
from loc3w.gateways.base import (
    ChargeSession,
    ChargeStatus,
    ChargeVerification,
    GatewayType,
    PaymentGateway,
    RefundOutcome,
    RefundStatus,
)
from loc3w.models.equipment import Equipment
from loc3w.models.user import User
from loc3w.services.availability_service import AvailabilityIndex
from loc3w.services.booking_service import BookingLifecycle
from loc3w.services.commission_service import commission_engine
from loc3w.services.gateway_service import GatewayService
from loc3w.services.payment_service import PaymentService
from loc3w.services.wallet_service import WalletLedger


@compiles(UUID, "sqlite")
def _sqlite_uuid(type_, compiler, **kw):
    # SQLite gives a "UUID" column NUMERIC affinity, turning all-digit hex ids into integers
    return "CHAR(32)"


class RecordingNotifier:
    """Notifier that keeps notifications in memory."""

    def __init__(self):
        self.sent = []

    async def notify(self, user_id, notification_type, title, message, booking_id=None):
        self.sent.append(
            {
                "user_id": user_id,
                "type": notification_type,
                "title": title,
                "message": message,
                "booking_id": booking_id,
            }
        )

    def types_for(self, user_id):
        return [n["type"] for n in self.sent if n["user_id"] == user_id]


class FakeGateway(PaymentGateway):
    """Scriptable gateway: charges stay pending until a test settles them."""

    def __init__(self, gateway_type: GatewayType = GatewayType.KKIAPAY):
        self._type = gateway_type
        self._ids = itertools.count(1)
        self.charges: dict[str, dict] = {}
        self.refunds: list[dict] = []
        self.refund_error: PaymentGatewayError | None = None
        self.refund_status = RefundStatus.COMPLETED

    @property
    def gateway_type(self) -> GatewayType:
        return self._type

    async def initiate_charge(self, amount, currency, metadata=None):
        transaction_id = f"{self._type.value}-tx-{next(self._ids)}"
        self.charges[transaction_id] = {"amount": amount, "status": ChargeStatus.PENDING}
        return ChargeSession(
            checkout_url=f"https://pay.test/{transaction_id}",
            provider_transaction_id=transaction_id,
            raw_response={"id": transaction_id},
        )

    async def verify_charge(self, provider_transaction_id):
        charge = self.charges[provider_transaction_id]
        return ChargeVerification(
            status=charge["status"],
            amount=charge.get("settled_amount", charge["amount"]),
            raw_response={"status": charge["status"].value},
        )

    async def initiate_refund(self, provider_transaction_id, amount, reason):
        if self.refund_error is not None:
            raise self.refund_error
        self.refunds.append({"transaction_id": provider_transaction_id, "amount": amount})
        return RefundOutcome(status=self.refund_status, refund_id=f"rf-{len(self.refunds)}")

    def settle(self, transaction_id, status=ChargeStatus.COMPLETED, amount=None):
        self.charges[transaction_id]["status"] = status
        if amount is not None:
            self.charges[transaction_id]["settled_amount"] = amount


@pytest.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """Database session for a single test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def platform_user(db):
    user = User(id=settings.platform_account_id, email="platform@3wloc.test", role="platform")
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def owner(db):
    user = User(email="owner@3wloc.test", first_name="Koffi", last_name="Mensah")
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def renter(db):
    user = User(email="renter@3wloc.test", first_name="Awa", last_name="Diallo")
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def admin(db):
    user = User(email="admin@3wloc.test", role="admin")
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def equipment(db, owner):
    """Approved equipment at 15000 FCFA/day and 90000 FCFA/week."""
    item = Equipment(
        owner_id=owner.id,
        title="Bétonnière 350L",
        daily_price=15000,
        weekly_price=90000,
        deposit_amount=50000,
        currency="XOF",
        moderation_status="approved",
    )
    db.add(item)
    await db.flush()
    return item


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def feed():
    return LocalChangeFeed()


@pytest.fixture
def kkiapay():
    return FakeGateway(GatewayType.KKIAPAY)


@pytest.fixture
def stripe_fake():
    return FakeGateway(GatewayType.STRIPE)


@pytest.fixture
def gateways(kkiapay, stripe_fake):
    return GatewayService({GatewayType.KKIAPAY: kkiapay, GatewayType.STRIPE: stripe_fake})


@pytest.fixture
def ledger(db):
    return WalletLedger(db)


@pytest.fixture
def availability(db, feed):
    return AvailabilityIndex(db, feed)


@pytest.fixture
def lifecycle(db, ledger, gateways, notifier, availability, feed):
    return BookingLifecycle(
        db=db,
        ledger=ledger,
        gateways=gateways,
        notifier=notifier,
        availability=availability,
        commission=commission_engine,
        feed=feed,
    )


@pytest.fixture
def payments(db, gateways, lifecycle, ledger, notifier):
    return PaymentService(
        db=db,
        gateways=gateways,
        lifecycle=lifecycle,
        ledger=ledger,
        commission=commission_engine,
        notifier=notifier,
    )


@pytest.fixture
def future():
    """Return a date ``days`` days from today."""

    def _future(days: int):
        return datetime.now(UTC).date() + timedelta(days=days)

    return _future


@pytest.fixture
async def funded_renter(renter, ledger):
    """Renter whose wallet holds 500000 FCFA."""
    wallet = await ledger.ensure_wallet(renter.id)
    await ledger.record_transaction(wallet.id, 500000, "credit", "Recharge de test")
    return renter


@pytest.fixture
def make_booking(db, equipment, renter):
    """Insert a booking row directly, bypassing the lifecycle."""
    counter = itertools.count(1)

    async def _make(start, end, status="requested", payment_status="unpaid"):
        from loc3w.models.booking import Booking

        days = (end - start).days + 1
        breakdown = commission_engine.calculate_commission(days * equipment.daily_price)
        booking = Booking(
            booking_number=f"LOC-T{next(counter):05d}",
            equipment_id=equipment.id,
            renter_id=renter.id,
            owner_id=equipment.owner_id,
            start_date=start,
            end_date=end,
            rental_days=days,
            daily_price=equipment.daily_price,
            total_price=breakdown.subtotal,
            commission_amount=breakdown.commission,
            platform_fee=breakdown.platform_fee,
            owner_amount=breakdown.owner_amount,
            amount_charged=breakdown.total,
            status=status,
            payment_status=payment_status,
        )
        db.add(booking)
        await db.flush()
        return booking

    return _make
