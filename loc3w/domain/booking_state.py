"""Booking state machine."""

from loc3w.core.exceptions import InvalidBookingStatus

BOOKING_TRANSITIONS = {
    "requested": {"paid", "cancelled"},
    "paid": {"owner_approved", "owner_rejected"},
    "owner_approved": {"completed"},
    "owner_rejected": {"refunded"},
    "completed": set(),
    "refunded": set(),
    "cancelled": set(),
}

# Statuses that hold the equipment's dates
ACTIVE_STATUSES = ("requested", "paid", "owner_approved")

TERMINAL_STATUSES = frozenset(s for s, targets in BOOKING_TRANSITIONS.items() if not targets)


def assert_booking_transition(current: str, target: str) -> None:
    allowed = BOOKING_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidBookingStatus(
            f"Invalid booking transition: {current} → {target}"
        )
