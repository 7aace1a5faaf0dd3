"""Celery background tasks for payments and bookings."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from loc3w.config import settings
from loc3w.core.exceptions import RefundFailedError
from loc3w.database import session_scope
from loc3w.services.factory import build_lifecycle, build_payment_service

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


@asynccontextmanager
async def task_context() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Engine bound to this task's event loop, disposed afterwards."""
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


# ==================== PAYMENT TASKS ====================


@shared_task(bind=True, max_retries=3)
def poll_pending_charges(self):
    """Re-verify pending charges with their provider."""
    try:
        settled = run_async(_poll_pending_charges())
        return {"status": "success", "settled": settled}
    except Exception as exc:
        self.retry(exc=exc, countdown=60)


async def _poll_pending_charges() -> int:
    async with task_context() as factory:
        async with session_scope(factory) as db:
            service = build_payment_service(db)
            settled = await service.poll_pending()

    if settled:
        logger.info(f"Settled {settled} pending charge(s)")
    return settled


@shared_task(bind=True, max_retries=3)
def retry_failed_refunds(self):
    """Retry refunds for rejected bookings that are still paid."""
    try:
        result = run_async(_retry_failed_refunds())
        return {"status": "success", **result}
    except Exception as exc:
        self.retry(exc=exc, countdown=300)


async def _retry_failed_refunds() -> dict:
    refunded = 0
    failed = 0

    async with task_context() as factory:
        async with session_scope(factory) as db:
            booking_ids = await build_lifecycle(db).pending_refunds()

        # One transaction per booking so a failure does not undo the others
        for booking_id in booking_ids:
            try:
                async with session_scope(factory) as db:
                    await build_lifecycle(db).retry_refund(booking_id)
                refunded += 1
            except RefundFailedError as e:
                failed += 1
                logger.error(f"Refund retry failed: {e.detail}")

    return {"refunded": refunded, "failed": failed}


# ==================== BOOKING TASKS ====================


@shared_task
def expire_unpaid_bookings():
    """Cancel requested bookings left unpaid past the configured TTL."""
    expired = run_async(_expire_unpaid_bookings())
    return {"status": "success", "expired": expired}


async def _expire_unpaid_bookings() -> int:
    async with task_context() as factory:
        async with session_scope(factory) as db:
            lifecycle = build_lifecycle(db)
            return await lifecycle.expire_unpaid(
                timedelta(hours=settings.unpaid_booking_ttl_hours)
            )
