"""Background wallet ledger reconciliation."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from loc3w.config import settings
from loc3w.database import session_scope
from loc3w.services.wallet_service import WalletLedger

logger = logging.getLogger(__name__)

# Flag to stop the background task
_stop_reconciliation = False


async def run_wallet_reconciliation(trigger: str = "scheduled") -> int | None:
    """Freeze wallets whose balance drifted from their ledger.

    Returns:
        Number of wallets frozen, or None when the run failed
    """
    engine = create_async_engine(settings.database_url)
    factory = async_sessionmaker(engine, expire_on_commit=False)

    try:
        logger.info(f"Starting wallet reconciliation (trigger: {trigger})")
        async with session_scope(factory) as db:
            mismatches = await WalletLedger(db).reconcile_all()

        if mismatches:
            logger.critical(
                f"Wallet reconciliation froze {len(mismatches)} wallet(s): "
                + ", ".join(str(check.wallet_id) for check in mismatches)
            )
        else:
            logger.info("Wallet reconciliation completed: all balances match their ledgers")
        return len(mismatches)

    except Exception as e:
        logger.error(f"Wallet reconciliation failed: {e}", exc_info=True)
        return None

    finally:
        await engine.dispose()


async def start_reconciliation_scheduler():
    """Background task that reconciles wallets on a fixed interval."""
    global _stop_reconciliation
    _stop_reconciliation = False

    logger.info("Wallet reconciliation scheduler started")

    while not _stop_reconciliation:
        await run_wallet_reconciliation(trigger="scheduled")

        # Wait for next interval (check stop flag every minute)
        for _ in range(max(1, settings.wallet_reconciliation_interval // 60)):
            if _stop_reconciliation:
                break
            await asyncio.sleep(60)

    logger.info("Wallet reconciliation scheduler stopped")


def stop_reconciliation_scheduler():
    """Signal the reconciliation scheduler to stop."""
    global _stop_reconciliation
    _stop_reconciliation = True
