"""Tests for commission and platform fee arithmetic."""

from decimal import Decimal

from loc3w.services.commission_service import (
    CommissionEngine,
    commission_engine,
    round_half_up,
)


def test_standard_breakdown():
    """Test the 5% commission and 2% platform fee on a round subtotal."""
    breakdown = commission_engine.calculate_commission(100000)

    assert breakdown.commission == 5000
    assert breakdown.platform_fee == 2000
    assert breakdown.owner_amount == 95000
    assert breakdown.total == 102000


def test_amounts_reconcile():
    """Test owner share plus platform revenue equals what the renter pays."""
    for subtotal in (1, 17, 333, 12345, 135000, 999999):
        b = commission_engine.calculate_commission(subtotal)
        assert b.owner_amount + b.commission + b.platform_fee == b.total
        assert b.owner_amount == b.subtotal - b.commission


def test_rounding_half_up():
    """Test halves round away from zero on each amount independently."""
    # 5% of 10 = 0.5 -> 1 ; 2% of 25 = 0.5 -> 1
    assert commission_engine.calculate_commission(10).commission == 1
    assert commission_engine.calculate_commission(25).platform_fee == 1
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("2.49")) == 2


def test_zero_subtotal():
    """Test a zero subtotal produces a zero breakdown."""
    b = commission_engine.calculate_commission(0)
    assert (b.commission, b.platform_fee, b.owner_amount, b.total) == (0, 0, 0, 0)


def test_rental_commission_uses_weekly_pricing():
    """Test the rental breakdown is computed on the weekly-priced subtotal."""
    b = CommissionEngine().calculate_rental_commission(15000, 10, weekly_price=90000)

    assert b.subtotal == 135000
    assert b.commission == 6750
    assert b.platform_fee == 2700
    assert b.total == 137700


def test_preview_includes_rates():
    """Test the preview exposes the applied percentages."""
    preview = commission_engine.preview_commission(100000)

    assert preview["commission_rate"] == 5.0
    assert preview["platform_fee_rate"] == 2.0
    assert preview["total"] == 102000


def test_minimum_amount_below_threshold():
    """Test an amount under the minimum is reported, not raised."""
    check = commission_engine.validate_minimum_amount(500, 1000)

    assert not check.is_valid
    assert check.minimum_amount == 1000
    assert check.message == "Le montant minimum est de 1000 FCFA"
    assert check.calculation.subtotal == 500


def test_minimum_amount_at_threshold():
    """Test the threshold itself is accepted."""
    check = commission_engine.validate_minimum_amount(1000, 1000)

    assert check.is_valid
    assert check.message is None
