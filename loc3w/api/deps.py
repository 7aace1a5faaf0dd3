"""API dependencies for authentication and service wiring.

Services are built per request around the request's session; nothing is
shared between requests except the change feed held on the application.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loc3w.core.change_feed import ChangeFeed
from loc3w.core.exceptions import AuthenticationError, AuthorizationError
from loc3w.core.security import verify_token
from loc3w.database import get_db
from loc3w.models.user import User
from loc3w.services.availability_service import AvailabilityIndex
from loc3w.services.booking_service import BookingLifecycle
from loc3w.services.commission_service import CommissionEngine, commission_engine
from loc3w.services.factory import build_lifecycle, build_payment_service
from loc3w.services.gateway_service import GatewayService
from loc3w.services.notification_service import NotificationService
from loc3w.services.payment_service import PaymentService
from loc3w.services.wallet_service import WalletLedger

# Security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    payload = verify_token(credentials.credentials, token_type="access")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")
    try:
        user_uuid = UUID(user_id)
    except ValueError:
        raise AuthenticationError("Invalid token subject")

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if current_user.role != "admin":
        raise AuthorizationError("Admin access required")
    return current_user


def get_change_feed(request: Request) -> ChangeFeed | None:
    return getattr(request.app.state, "change_feed", None)


def get_gateway_service() -> GatewayService:
    return GatewayService()


def get_notifier(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationService:
    return NotificationService(db)


def get_commission_engine() -> CommissionEngine:
    return commission_engine


def get_wallet_ledger(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WalletLedger:
    return WalletLedger(db)


def get_availability_index(
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed | None, Depends(get_change_feed)],
) -> AvailabilityIndex:
    return AvailabilityIndex(db, feed)


def get_booking_lifecycle(
    db: Annotated[AsyncSession, Depends(get_db)],
    gateways: Annotated[GatewayService, Depends(get_gateway_service)],
    notifier: Annotated[NotificationService, Depends(get_notifier)],
    feed: Annotated[ChangeFeed | None, Depends(get_change_feed)],
) -> BookingLifecycle:
    return build_lifecycle(db, gateways=gateways, notifier=notifier, feed=feed)


def get_payment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    gateways: Annotated[GatewayService, Depends(get_gateway_service)],
    notifier: Annotated[NotificationService, Depends(get_notifier)],
    feed: Annotated[ChangeFeed | None, Depends(get_change_feed)],
) -> PaymentService:
    return build_payment_service(db, gateways=gateways, notifier=notifier, feed=feed)


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
