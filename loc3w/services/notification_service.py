"""In-app notifications.

Notifications are written in the caller's session, inside a savepoint, so
they commit together with the transition that caused them. A failed write
rolls back only its savepoint; it is logged and dropped and can never undo
a booking or payment transition.
"""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Writes in-app notifications for booking and payment events."""

    # Notification types
    BOOKING_REQUEST = "booking_request"
    BOOKING_PAID = "booking_paid"
    BOOKING_APPROVED = "booking_approved"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_CANCELLED = "booking_cancelled"
    REFUND_COMPLETED = "refund_completed"
    REFUND_FAILED = "refund_failed"
    DISPUTE_OPENED = "dispute_opened"
    WALLET_CREDITED = "wallet_credited"

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def notify(
        self,
        user_id: UUID,
        notification_type: str,
        title: str,
        message: str,
        booking_id: UUID | None = None,
    ) -> None:
        """Create an in-app notification; never raises."""
        try:
            async with self.db.begin_nested():
                self.db.add(
                    Notification(
                        user_id=user_id,
                        notification_type=notification_type,
                        title=title,
                        message=message,
                        booking_id=booking_id,
                    )
                )
        except SQLAlchemyError:
            logger.exception(
                f"Failed to send '{notification_type}' notification to user {user_id}"
            )
