"""Booking database model."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from loc3w.database import Base, utcnow


class Booking(Base):
    """Rental booking. Rows are never deleted.

    ``total_price`` is the rental subtotal; ``amount_charged`` is what the
    renter pays (subtotal plus platform fee). The overlap exclusion
    constraint is created by the migration on PostgreSQL.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_equipment_dates", "equipment_id", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    booking_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # LOC-XXXXXX
    equipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("equipments.id"), nullable=False, index=True
    )
    renter_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )

    # Dates (inclusive)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    rental_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # Price snapshot at creation
    daily_price: Mapped[int] = mapped_column(Integer, nullable=False)
    weekly_price: Mapped[int | None] = mapped_column(Integer)

    # Amounts in whole FCFA
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    commission_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_charged: Mapped[int] = mapped_column(Integer, nullable=False)
    deposit_amount: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="XOF")

    # requested, paid, owner_approved, owner_rejected, completed, refunded, cancelled
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="requested", index=True)
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="unpaid"
    )  # unpaid, paid, refunded
    payment_method: Mapped[str | None] = mapped_column(String(20))  # wallet, card, mobile_money

    # Contract signatures (recorded elsewhere, kept for display)
    owner_signed: Mapped[bool] = mapped_column(Boolean, default=False)
    renter_signed: Mapped[bool] = mapped_column(Boolean, default=False)

    rejection_reason: Mapped[str | None] = mapped_column(Text)
    refund_review_required: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
