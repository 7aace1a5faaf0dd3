"""Payment state machines: booking payment status and external charges."""

from loc3w.core.exceptions import ValidationError

BOOKING_PAYMENT_TRANSITIONS = {
    "unpaid": {"paid"},
    "paid": {"refunded"},
    "refunded": set(),
}

CHARGE_TRANSITIONS = {
    "pending": {"completed", "failed"},
    "completed": {"refunded"},
    "failed": set(),
    "refunded": set(),
}


def assert_payment_transition(current: str, target: str) -> None:
    allowed = BOOKING_PAYMENT_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ValidationError(
            f"Invalid payment transition: {current} → {target}"
        )


def assert_charge_transition(current: str, target: str) -> None:
    allowed = CHARGE_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ValidationError(
            f"Invalid charge transition: {current} → {target}"
        )
