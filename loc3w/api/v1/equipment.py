"""Equipment availability and price quote endpoints."""

from datetime import UTC, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.api.deps import get_availability_index, get_commission_engine
from loc3w.core.exceptions import AvailabilityUnknownError, NotFoundError, ValidationError
from loc3w.database import get_db
from loc3w.domain.pricing import calculate_rental_price, rental_days
from loc3w.models.equipment import Equipment
from loc3w.schemas.equipment import (
    AvailabilityResponse,
    BlockedRange,
    QuoteRequest,
    QuoteResponse,
    RangeCheckResponse,
)
from loc3w.services.availability_service import AvailabilityIndex, AvailabilityState
from loc3w.services.commission_service import CommissionEngine

router = APIRouter()


async def _get_equipment(db: AsyncSession, equipment_id: UUID) -> Equipment:
    result = await db.execute(select(Equipment).where(Equipment.id == equipment_id))
    equipment = result.scalar_one_or_none()
    if not equipment:
        raise NotFoundError("Equipment", str(equipment_id))
    return equipment


@router.get("/{equipment_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    equipment_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    availability: Annotated[AvailabilityIndex, Depends(get_availability_index)],
) -> AvailabilityResponse:
    """Blocked ranges and the next free day.

    Answers with state ``unknown`` instead of an empty calendar when the
    bookings cannot be read.
    """
    await _get_equipment(db, equipment_id)
    try:
        ranges = await availability.blocked_ranges(equipment_id)
    except AvailabilityUnknownError:
        return AvailabilityResponse(
            equipment_id=str(equipment_id),
            state=AvailabilityState.UNKNOWN.value,
        )

    today = datetime.now(UTC).date()
    return AvailabilityResponse(
        equipment_id=str(equipment_id),
        state=AvailabilityState.AVAILABLE.value,
        blocked_ranges=[BlockedRange(start=r.start, end=r.end) for r in ranges],
        next_available_date=await availability.next_available_date(equipment_id, today),
    )


@router.get("/{equipment_id}/availability/check", response_model=RangeCheckResponse)
async def check_range(
    equipment_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    availability: Annotated[AvailabilityIndex, Depends(get_availability_index)],
    start_date: Annotated[str, Query(description="YYYY-MM-DD")],
    end_date: Annotated[str, Query(description="YYYY-MM-DD")],
) -> RangeCheckResponse:
    """Whether [start_date, end_date] is free. Unknown counts as taken."""
    await _get_equipment(db, equipment_id)
    try:
        start = datetime.strptime(start_date, "%Y-%m-%d").date()
        end = datetime.strptime(end_date, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Dates must use the YYYY-MM-DD format")

    overlap = await availability.has_overlap(equipment_id, start, end)
    return RangeCheckResponse(start_date=start, end_date=end, available=not overlap)


@router.post("/{equipment_id}/quote", response_model=QuoteResponse)
async def quote_rental(
    equipment_id: UUID,
    request: QuoteRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    commission: Annotated[CommissionEngine, Depends(get_commission_engine)],
) -> QuoteResponse:
    """Price a rental without creating a booking."""
    equipment = await _get_equipment(db, equipment_id)

    days = rental_days(request.start_date, request.end_date)
    subtotal = calculate_rental_price(equipment.daily_price, equipment.weekly_price, days)
    breakdown = commission.calculate_commission(subtotal)

    return QuoteResponse(
        rental_days=days,
        daily_price=equipment.daily_price,
        weekly_price=equipment.weekly_price,
        subtotal=breakdown.subtotal,
        commission=breakdown.commission,
        platform_fee=breakdown.platform_fee,
        owner_amount=breakdown.owner_amount,
        total=breakdown.total,
        deposit_amount=equipment.deposit_amount or 0,
        currency=equipment.currency,
    )
