"""Wallet endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from loc3w.api.deps import CurrentUser, get_payment_service, get_wallet_ledger
from loc3w.core.middleware import recharge_limiter
from loc3w.schemas.payment import PaymentResponse
from loc3w.schemas.wallet import (
    CommissionStatsResponse,
    RechargeRequest,
    WalletResponse,
    WalletTransactionResponse,
)
from loc3w.services.payment_service import PaymentService
from loc3w.services.wallet_service import WalletLedger

router = APIRouter()


@router.get("/me", response_model=WalletResponse)
async def get_my_wallet(
    current_user: CurrentUser,
    ledger: Annotated[WalletLedger, Depends(get_wallet_ledger)],
) -> WalletResponse:
    """Current user's wallet, created empty on first access."""
    return await ledger.ensure_wallet(current_user.id)


@router.get("/me/transactions", response_model=list[WalletTransactionResponse])
async def list_my_transactions(
    current_user: CurrentUser,
    ledger: Annotated[WalletLedger, Depends(get_wallet_ledger)],
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[WalletTransactionResponse]:
    wallet = await ledger.ensure_wallet(current_user.id)
    return await ledger.list_transactions(wallet.id, limit=limit, offset=offset)


@router.get("/me/commissions", response_model=CommissionStatsResponse)
async def my_commission_stats(
    current_user: CurrentUser,
    ledger: Annotated[WalletLedger, Depends(get_wallet_ledger)],
    period: Annotated[str, Query(pattern="^(week|month|year)$")] = "month",
) -> CommissionStatsResponse:
    """Commission withheld from the owner's rentals over the period."""
    return CommissionStatsResponse(**await ledger.commission_stats(current_user.id, period))


@router.post(
    "/me/recharge",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(recharge_limiter)],
)
async def recharge_wallet(
    request: RechargeRequest,
    current_user: CurrentUser,
    payments: Annotated[PaymentService, Depends(get_payment_service)],
) -> PaymentResponse:
    """Open a checkout that credits the wallet once the charge verifies."""
    return await payments.start_wallet_recharge(current_user.id, request.amount, request.method)
