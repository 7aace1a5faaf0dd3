"""Tests for the wallet ledger."""

import pytest
from sqlalchemy import select, update

from loc3w.core.exceptions import (
    InsufficientFundsError,
    InvariantViolationError,
    ValidationError,
)
from loc3w.models.wallet import WalletAccount, WalletTransaction
from loc3w.services.wallet_service import assert_signed_amount


async def _transactions(db, wallet_id):
    result = await db.execute(select(WalletTransaction).where(WalletTransaction.wallet_id == wallet_id))
    return list(result.scalars().all())


async def test_ensure_wallet_is_idempotent(ledger, renter):
    """Test repeated calls return the same empty wallet."""
    first = await ledger.ensure_wallet(renter.id)
    second = await ledger.ensure_wallet(renter.id)

    assert first.id == second.id
    assert first.balance == 0
    assert first.currency == "XOF"
    assert not first.is_frozen


async def test_ensure_wallet_survives_concurrent_creation(db, ledger, renter, monkeypatch):
    """Test a wallet created between lookup and insert is re-fetched, not duplicated."""
    existing = await ledger.ensure_wallet(renter.id)
    original_get_wallet = ledger.get_wallet
    calls = []

    async def stale_first_lookup(user_id):
        calls.append(user_id)
        if len(calls) == 1:
            return None
        return await original_get_wallet(user_id)

    monkeypatch.setattr(ledger, "get_wallet", stale_first_lookup)

    wallet = await ledger.ensure_wallet(renter.id)

    assert len(calls) == 2
    assert wallet.id == existing.id
    result = await db.execute(select(WalletAccount).where(WalletAccount.user_id == renter.id))
    assert len(result.scalars().all()) == 1


async def test_credit_and_debit_move_balance(db, ledger, renter):
    """Test completed transactions move the balance by their signed amount."""
    wallet = await ledger.ensure_wallet(renter.id)

    await ledger.record_transaction(wallet.id, 10000, "credit", "Recharge")
    await ledger.record_transaction(wallet.id, -2500, "debit", "Paiement")

    wallet = await ledger.get_wallet(renter.id)
    assert wallet.balance == 7500
    check = await ledger.verify_balance(wallet.id)
    assert check.consistent
    assert check.ledger_total == 7500


async def test_insufficient_funds_writes_nothing(db, ledger, renter):
    """Test a debit beyond the balance is refused without any ledger line."""
    wallet = await ledger.ensure_wallet(renter.id)
    await ledger.record_transaction(wallet.id, 500, "credit", "Recharge")

    with pytest.raises(InsufficientFundsError) as exc_info:
        await ledger.record_transaction(wallet.id, -102000, "debit", "Paiement")

    assert exc_info.value.status_code == 402
    wallet = await ledger.get_wallet(renter.id)
    assert wallet.balance == 500
    assert len(await _transactions(db, wallet.id)) == 1


@pytest.mark.parametrize(
    "amount,transaction_type",
    [(-100, "credit"), (-100, "refund"), (100, "debit"), (100, "commission"), (0, "credit")],
)
def test_sign_must_match_type(amount, transaction_type):
    """Test amounts whose sign contradicts the transaction type are refused."""
    with pytest.raises(ValidationError):
        assert_signed_amount(amount, transaction_type)


def test_unknown_transaction_type():
    """Test unknown transaction types are refused."""
    with pytest.raises(ValidationError):
        assert_signed_amount(100, "bonus")


async def test_pending_transaction_does_not_move_balance(ledger, renter):
    """Test pending lines are excluded until completed."""
    wallet = await ledger.ensure_wallet(renter.id)

    await ledger.record_transaction(
        wallet.id, 5000, "credit", "Recharge", reference_id="kk-1", status="pending"
    )

    wallet = await ledger.get_wallet(renter.id)
    assert wallet.balance == 0
    assert (await ledger.check_balance(wallet.id)).consistent


async def test_complete_transaction_is_idempotent(ledger, renter):
    """Test completing twice credits the wallet once."""
    wallet = await ledger.ensure_wallet(renter.id)
    await ledger.record_transaction(
        wallet.id, 5000, "credit", "Recharge", reference_id="kk-2", status="pending"
    )

    first = await ledger.complete_transaction("kk-2")
    second = await ledger.complete_transaction("kk-2")

    assert first.status == "completed"
    assert second.status == "completed"
    assert first.completed_at is not None
    wallet = await ledger.get_wallet(renter.id)
    assert wallet.balance == 5000


async def test_failed_transaction_cannot_complete(ledger, renter):
    """Test a failed line stays failed."""
    wallet = await ledger.ensure_wallet(renter.id)
    await ledger.record_transaction(
        wallet.id, 5000, "credit", "Recharge", reference_id="kk-3", status="pending"
    )

    failed = await ledger.fail_transaction("kk-3")
    assert failed.status == "failed"

    with pytest.raises(ValidationError):
        await ledger.complete_transaction("kk-3")
    assert (await ledger.get_wallet(renter.id)).balance == 0


async def test_record_for_user_creates_wallet(ledger, owner):
    """Test crediting a user without a wallet opens one."""
    transaction = await ledger.record_for_user(owner.id, 95000, "credit", "Location")

    wallet = await ledger.get_wallet(owner.id)
    assert wallet is not None
    assert wallet.balance == 95000
    assert transaction.wallet_id == wallet.id


async def test_has_sufficient_balance(ledger, renter):
    """Test the balance pre-check."""
    wallet = await ledger.ensure_wallet(renter.id)
    await ledger.record_transaction(wallet.id, 1000, "credit", "Recharge")

    assert await ledger.has_sufficient_balance(renter.id, 1000)
    assert not await ledger.has_sufficient_balance(renter.id, 1001)


async def test_reconcile_freezes_drifted_wallet(db, ledger, renter, owner):
    """Test a wallet whose balance disagrees with its ledger is frozen."""
    drifted = await ledger.ensure_wallet(renter.id)
    healthy = await ledger.ensure_wallet(owner.id)
    await ledger.record_transaction(drifted.id, 1000, "credit", "Recharge")
    await ledger.record_transaction(healthy.id, 1000, "credit", "Recharge")

    # Tamper with the balance behind the ledger's back
    await db.execute(
        update(WalletAccount).where(WalletAccount.id == drifted.id).values(balance=9999)
    )

    with pytest.raises(InvariantViolationError):
        await ledger.verify_balance(drifted.id)

    mismatches = await ledger.reconcile_all()

    assert [m.wallet_id for m in mismatches] == [drifted.id]
    assert mismatches[0].ledger_total == 1000
    drifted = await ledger.get_wallet(renter.id)
    assert drifted.is_frozen
    assert not (await ledger.get_wallet(owner.id)).is_frozen


async def test_frozen_wallet_refuses_movements(db, ledger, renter):
    """Test a frozen wallet accepts neither credits nor debits."""
    wallet = await ledger.ensure_wallet(renter.id)
    await db.execute(update(WalletAccount).where(WalletAccount.id == wallet.id).values(is_frozen=True))

    with pytest.raises(InvariantViolationError):
        await ledger.record_transaction(wallet.id, 1000, "credit", "Recharge")
    assert not await ledger.has_sufficient_balance(renter.id, 0)


async def test_commission_stats(ledger, owner):
    """Test commission stats sum the owner's commission lines."""
    await ledger.record_for_user(owner.id, 100000, "credit", "Location 1")
    await ledger.record_for_user(owner.id, -5000, "commission", "Commission 1")
    await ledger.record_for_user(owner.id, -2500, "commission", "Commission 2")

    stats = await ledger.commission_stats(owner.id, "month")

    assert stats == {"period": "month", "total_commission": 7500, "transaction_count": 2}


async def test_commission_stats_without_wallet(ledger, renter):
    """Test stats for a user with no wallet are zero."""
    stats = await ledger.commission_stats(renter.id, "week")

    assert stats["total_commission"] == 0
    assert stats["transaction_count"] == 0


async def test_commission_stats_unknown_period(ledger, owner):
    """Test unknown periods are refused."""
    with pytest.raises(ValidationError):
        await ledger.commission_stats(owner.id, "decade")
