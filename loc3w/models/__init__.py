"""Database models."""

from loc3w.models.booking import Booking
from loc3w.models.dispute import Dispute
from loc3w.models.equipment import Equipment
from loc3w.models.notification import Notification
from loc3w.models.payment import Payment, Refund
from loc3w.models.user import User
from loc3w.models.wallet import WalletAccount, WalletTransaction

__all__ = [
    # User
    "User",
    # Equipment
    "Equipment",
    # Booking
    "Booking",
    # Wallet
    "WalletAccount",
    "WalletTransaction",
    # Payment
    "Payment",
    "Refund",
    # Admin
    "Dispute",
    # Notification
    "Notification",
]
