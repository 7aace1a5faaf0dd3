"""Equipment listing model (read side only; listing CRUD lives elsewhere)."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from loc3w.database import Base, utcnow


class Equipment(Base):
    """Rentable equipment owned by a user."""

    __tablename__ = "equipments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # Pricing in whole FCFA
    daily_price: Mapped[int] = mapped_column(Integer, nullable=False)
    weekly_price: Mapped[int | None] = mapped_column(Integer)
    deposit_amount: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="XOF")

    status: Mapped[str] = mapped_column(
        String(20), default="available"
    )  # available, rented
    moderation_status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending, approved, rejected

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    @property
    def is_bookable(self) -> bool:
        return self.moderation_status == "approved"
