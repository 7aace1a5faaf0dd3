"""Wallet ledger service.

Every balance change is a single guarded UPDATE executed before the ledger
row is inserted, inside the caller's transaction:

    UPDATE wallets SET balance = balance + :delta
    WHERE id = :id AND NOT is_frozen AND balance + :delta >= 0

A zero row count means the debit is refused and nothing is written, so
concurrent debits can never overdraw a wallet and ``balance`` always equals
the sum of completed transactions.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.config import settings
from loc3w.core.exceptions import (
    InsufficientFundsError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from loc3w.models.wallet import WalletAccount, WalletTransaction

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("credit", "debit", "commission", "refund")

# Sign each transaction type must carry
POSITIVE_TYPES = frozenset({"credit", "refund"})
NEGATIVE_TYPES = frozenset({"debit", "commission"})

STATS_PERIODS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


def assert_signed_amount(amount: int, transaction_type: str) -> None:
    """Guard: amount sign must match the transaction type."""
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {transaction_type}")
    if amount == 0:
        raise ValidationError("Transaction amount cannot be zero")
    if transaction_type in POSITIVE_TYPES and amount < 0:
        raise ValidationError(f"{transaction_type} amount must be positive, got {amount}")
    if transaction_type in NEGATIVE_TYPES and amount > 0:
        raise ValidationError(f"{transaction_type} amount must be negative, got {amount}")


@dataclass(frozen=True)
class BalanceCheck:
    wallet_id: UUID
    balance: int
    ledger_total: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_total


class WalletLedger:
    """Wallet accounts and their append-only transaction ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.bind.dialect.name if self.db.bind is not None else "postgresql"
        if dialect == "sqlite":
            return sqlite_insert(WalletAccount)
        return pg_insert(WalletAccount)

    async def ensure_wallet(self, user_id: UUID) -> WalletAccount:
        """Return the user's wallet, creating it on first use.

        Concurrent first calls race on the unique ``user_id``; the losing
        insert is skipped and the winner's row is re-fetched.
        """
        wallet = await self.get_wallet(user_id)
        if wallet is not None:
            return wallet

        stmt = (
            self._insert()
            .values(user_id=user_id, balance=0, currency=settings.currency, is_frozen=False)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await self.db.execute(stmt)

        wallet = await self.get_wallet(user_id)
        if wallet is None:
            raise InvariantViolationError(f"Wallet for user {user_id} vanished after creation")
        logger.info(f"Wallet ready for user {user_id}: {wallet.id}")
        return wallet

    async def get_wallet(self, user_id: UUID) -> WalletAccount | None:
        result = await self.db.execute(
            select(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _reload(self, wallet_id: UUID) -> WalletAccount:
        result = await self.db.execute(
            select(WalletAccount)
            .where(WalletAccount.id == wallet_id)
            .execution_options(populate_existing=True)
        )
        wallet = result.scalar_one_or_none()
        if wallet is None:
            raise NotFoundError("Wallet", str(wallet_id))
        return wallet

    async def _apply_delta(self, wallet_id: UUID, delta: int) -> WalletAccount:
        """Atomically add ``delta`` to a wallet balance or refuse."""
        result = await self.db.execute(
            update(WalletAccount)
            .where(
                WalletAccount.id == wallet_id,
                WalletAccount.is_frozen.is_(False),
                WalletAccount.balance + delta >= 0,
            )
            .values(balance=WalletAccount.balance + delta)
            .execution_options(synchronize_session=False)
        )
        wallet = await self._reload(wallet_id)

        if result.rowcount != 1:
            if wallet.is_frozen:
                raise InvariantViolationError(
                    f"Wallet {wallet_id} is frozen pending reconciliation"
                )
            logger.info(
                f"Refused debit of {-delta} on wallet {wallet_id}: balance {wallet.balance}"
            )
            raise InsufficientFundsError(required=-delta, available=wallet.balance)

        return wallet

    async def record_transaction(
        self,
        wallet_id: UUID,
        amount: int,
        transaction_type: str,
        description: str,
        reference_id: str | None = None,
        booking_id: UUID | None = None,
        status: str = "completed",
    ) -> WalletTransaction:
        """Append a ledger line and, when completed, move the balance with it.

        Raises:
            InsufficientFundsError: debit would make the balance negative
            InvariantViolationError: wallet is frozen
        """
        assert_signed_amount(amount, transaction_type)
        if status not in ("pending", "completed"):
            raise ValidationError(f"Cannot record a transaction as {status}")

        completed_at = None
        if status == "completed":
            await self._apply_delta(wallet_id, amount)
            completed_at = datetime.now(UTC)

        transaction = WalletTransaction(
            wallet_id=wallet_id,
            amount=amount,
            transaction_type=transaction_type,
            status=status,
            description=description,
            reference_id=reference_id,
            booking_id=booking_id,
            completed_at=completed_at,
        )
        self.db.add(transaction)
        await self.db.flush()

        logger.info(
            f"Wallet {wallet_id}: {transaction_type} {amount:+d} ({status})"
            + (f" for booking {booking_id}" if booking_id else "")
        )
        return transaction

    async def record_for_user(
        self,
        user_id: UUID,
        amount: int,
        transaction_type: str,
        description: str,
        booking_id: UUID | None = None,
    ) -> WalletTransaction:
        """Record a completed transaction on a user's wallet, creating it if needed."""
        wallet = await self.ensure_wallet(user_id)
        return await self.record_transaction(
            wallet.id,
            amount,
            transaction_type,
            description,
            booking_id=booking_id,
        )

    async def _by_reference(self, reference_id: str) -> WalletTransaction:
        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.reference_id == reference_id)
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundError("Wallet transaction", reference_id)
        return transaction

    async def complete_transaction(self, reference_id: str) -> WalletTransaction:
        """Settle a pending transaction. Repeated calls are no-ops."""
        transaction = await self._by_reference(reference_id)

        flipped = await self.db.execute(
            update(WalletTransaction)
            .where(
                WalletTransaction.id == transaction.id,
                WalletTransaction.status == "pending",
            )
            .values(status="completed", completed_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            transaction = await self._by_reference(reference_id)
            if transaction.status != "completed":
                raise ValidationError(
                    f"Wallet transaction {reference_id} is {transaction.status}, cannot complete"
                )
            return transaction

        await self._apply_delta(transaction.wallet_id, transaction.amount)
        logger.info(
            f"Wallet {transaction.wallet_id}: pending {transaction.transaction_type} "
            f"{transaction.amount:+d} completed ({reference_id})"
        )
        return await self._by_reference(reference_id)

    async def fail_transaction(self, reference_id: str) -> WalletTransaction:
        """Mark a pending transaction failed; completed ones are left alone."""
        transaction = await self._by_reference(reference_id)
        await self.db.execute(
            update(WalletTransaction)
            .where(
                WalletTransaction.id == transaction.id,
                WalletTransaction.status == "pending",
            )
            .values(status="failed")
            .execution_options(synchronize_session=False)
        )
        return await self._by_reference(reference_id)

    async def has_sufficient_balance(self, user_id: UUID, amount: int) -> bool:
        wallet = await self.get_wallet(user_id)
        if wallet is None or wallet.is_frozen:
            return False
        return wallet.balance >= amount

    async def list_transactions(
        self,
        wallet_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WalletTransaction]:
        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def check_balance(self, wallet_id: UUID) -> BalanceCheck:
        wallet = await self._reload(wallet_id)
        result = await self.db.execute(
            select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
                WalletTransaction.wallet_id == wallet_id,
                WalletTransaction.status == "completed",
            )
        )
        return BalanceCheck(wallet_id=wallet_id, balance=wallet.balance, ledger_total=int(result.scalar_one()))

    async def verify_balance(self, wallet_id: UUID) -> BalanceCheck:
        """Raise InvariantViolationError when balance and ledger disagree."""
        check = await self.check_balance(wallet_id)
        if not check.consistent:
            logger.critical(
                f"Wallet {wallet_id} balance {check.balance} != ledger total {check.ledger_total}"
            )
            raise InvariantViolationError(f"Wallet {wallet_id} balance does not match its ledger")
        return check

    async def reconcile_all(self) -> list[BalanceCheck]:
        """Freeze every wallet whose balance drifted from its ledger.

        Returns:
            list[BalanceCheck]: The mismatching wallets (now frozen)
        """
        ledger_totals = (
            select(
                WalletTransaction.wallet_id,
                func.sum(WalletTransaction.amount).label("total"),
            )
            .where(WalletTransaction.status == "completed")
            .group_by(WalletTransaction.wallet_id)
            .subquery()
        )
        total = func.coalesce(ledger_totals.c.total, 0)
        result = await self.db.execute(
            select(WalletAccount.id, WalletAccount.balance, total)
            .outerjoin(ledger_totals, ledger_totals.c.wallet_id == WalletAccount.id)
            .where(WalletAccount.balance != total, WalletAccount.is_frozen.is_(False))
        )

        mismatches = [
            BalanceCheck(wallet_id=row[0], balance=row[1], ledger_total=int(row[2]))
            for row in result.all()
        ]
        for check in mismatches:
            await self.db.execute(
                update(WalletAccount)
                .where(WalletAccount.id == check.wallet_id)
                .values(
                    is_frozen=True,
                    frozen_reason=(
                        f"balance {check.balance} != ledger total {check.ledger_total}"
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            logger.critical(
                f"Froze wallet {check.wallet_id}: balance {check.balance} "
                f"!= ledger total {check.ledger_total}"
            )
        return mismatches

    async def commission_stats(self, user_id: UUID, period: str = "month") -> dict:
        """Commission paid by an owner over a period, from the ledger."""
        if period not in STATS_PERIODS:
            raise ValidationError(f"Unknown period: {period}")

        wallet = await self.get_wallet(user_id)
        if wallet is None:
            return {"period": period, "total_commission": 0, "transaction_count": 0}

        since = datetime.now(UTC) - STATS_PERIODS[period]
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(WalletTransaction.amount), 0),
                func.count(WalletTransaction.id),
            ).where(
                WalletTransaction.wallet_id == wallet.id,
                WalletTransaction.transaction_type == "commission",
                WalletTransaction.status == "completed",
                WalletTransaction.created_at >= since,
            )
        )
        total, count = result.one()
        return {
            "period": period,
            "total_commission": abs(int(total)),
            "transaction_count": int(count),
        }
