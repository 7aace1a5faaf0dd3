"""Commission calculation service.

CRITICAL BUSINESS LOGIC:
- 3W-LOC keeps a 5% commission on the rental subtotal (deducted from the owner)
- The renter pays a 2% platform fee on top of the subtotal
- Each amount is rounded half-up to a whole FCFA on its own
- owner_amount = subtotal - commission
- total charged to the renter = subtotal + platform_fee
- The same breakdown is used for the booking preview and for settlement
"""

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from loc3w.domain.pricing import calculate_rental_price

COMMISSION_RATE = Decimal("0.05")
PLATFORM_FEE_RATE = Decimal("0.02")

DEFAULT_MINIMUM_AMOUNT = 1000


def round_half_up(value: Decimal) -> int:
    """Round to a whole currency unit, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class CommissionBreakdown:
    """Settlement amounts for one subtotal, all in whole FCFA."""

    subtotal: int
    commission: int
    platform_fee: int
    owner_amount: int
    total: int

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MinimumAmountCheck:
    """Result of a minimum-amount validation. Never raised, only returned."""

    is_valid: bool
    minimum_amount: int
    calculation: CommissionBreakdown
    message: str | None = None


class CommissionEngine:
    """Pure commission arithmetic shared by previews and settlement."""

    def calculate_commission(self, subtotal: int) -> CommissionBreakdown:
        """Split a rental subtotal into commission, platform fee and owner share.

        Args:
            subtotal: Rental subtotal in whole FCFA

        Returns:
            CommissionBreakdown: All settlement amounts
        """
        amount = Decimal(subtotal)
        commission = round_half_up(amount * COMMISSION_RATE)
        platform_fee = round_half_up(amount * PLATFORM_FEE_RATE)
        return CommissionBreakdown(
            subtotal=subtotal,
            commission=commission,
            platform_fee=platform_fee,
            owner_amount=subtotal - commission,
            total=subtotal + platform_fee,
        )

    def calculate_rental_commission(
        self,
        daily_price: int,
        days: int,
        weekly_price: int | None = None,
    ) -> CommissionBreakdown:
        """Breakdown for a rental priced from the equipment's rates."""
        return self.calculate_commission(calculate_rental_price(daily_price, weekly_price, days))

    def preview_commission(self, amount: int) -> dict:
        """Breakdown plus the applied percentages, for display."""
        breakdown = self.calculate_commission(amount)
        return {
            **breakdown.as_dict(),
            "commission_rate": float(COMMISSION_RATE * 100),
            "platform_fee_rate": float(PLATFORM_FEE_RATE * 100),
        }

    def validate_minimum_amount(
        self,
        amount: int,
        threshold: int = DEFAULT_MINIMUM_AMOUNT,
    ) -> MinimumAmountCheck:
        """Check an amount against a minimum without raising.

        Args:
            amount: Amount in whole FCFA
            threshold: Minimum accepted amount

        Returns:
            MinimumAmountCheck: Validity, the minimum, the breakdown and a
            user-facing message when invalid
        """
        calculation = self.calculate_commission(max(amount, 0))
        if amount < threshold:
            return MinimumAmountCheck(
                is_valid=False,
                minimum_amount=threshold,
                calculation=calculation,
                message=f"Le montant minimum est de {threshold} FCFA",
            )
        return MinimumAmountCheck(
            is_valid=True,
            minimum_amount=threshold,
            calculation=calculation,
        )


commission_engine = CommissionEngine()
