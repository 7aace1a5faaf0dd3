"""Dispute records.

Only opening is handled here; investigation and resolution happen in the
back office.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.models.dispute import Dispute

logger = logging.getLogger(__name__)

DISPUTE_CATEGORIES = {"equipment_damage", "payment", "other"}


class DisputeService:
    """Service for opening disputes against a booking."""

    async def open_dispute(
        self,
        db: AsyncSession,
        booking_id: UUID,
        raised_by: UUID,
        against_id: UUID,
        category: str,
        description: str,
    ) -> Dispute:
        """Open a new dispute, or return the one already open for this booking and category."""
        existing = await db.execute(
            select(Dispute).where(
                Dispute.booking_id == booking_id,
                Dispute.category == category,
                Dispute.status == "opened",
            )
        )
        dispute = existing.scalar_one_or_none()
        if dispute is not None:
            return dispute

        dispute = Dispute(
            booking_id=booking_id,
            raised_by=raised_by,
            against_id=against_id,
            category=category if category in DISPUTE_CATEGORIES else "other",
            description=description,
            status="opened",
        )
        db.add(dispute)
        await db.flush()

        logger.info(f"Dispute {dispute.id} opened on booking {booking_id}: {category}")
        return dispute


dispute_service = DisputeService()
