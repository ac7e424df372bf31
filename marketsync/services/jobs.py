# marketsync/services/jobs.py
"""
Job entry points shared by the HTTP routes, the scheduler and the CLI.

Each job opens its own session and marketplace client and closes both when
done, so jobs for different users can run side by side.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import Granularity, RetentionTable
from marketsync.core.exceptions import RetentionError
from marketsync.database import async_session
from marketsync.services.listing_reconciler import ListingReconciler, ReconcileReport
from marketsync.services.marketplace import get_marketplace_client
from marketsync.services.retention import RetentionManager
from marketsync.services.sync_orchestrator import SyncOrchestrator, SyncReport

logger = logging.getLogger(__name__)


def retention_windows(settings: Settings) -> Dict[RetentionTable, timedelta]:
    return {
        RetentionTable.PRICE_OBSERVATIONS: timedelta(days=settings.PRICE_RETENTION_DAYS),
        RetentionTable.SALE_RECORDS: timedelta(days=settings.SALES_RETENTION_DAYS),
        RetentionTable.PRICE_ROLLUPS_DAILY: timedelta(days=settings.DAILY_ROLLUP_RETENTION_DAYS),
    }


async def run_user_sync(
    user_id: str,
    currency: Optional[str] = None,
    cancel_event: Optional[asyncio.Event] = None,
    sync_run_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> SyncReport:
    settings = settings or get_settings()
    client = get_marketplace_client(settings=settings)
    try:
        async with async_session() as db:
            orchestrator = SyncOrchestrator(db, client, settings)
            return await orchestrator.run(
                user_id,
                currency=currency,
                cancel_event=cancel_event,
                sync_run_id=sync_run_id,
            )
    finally:
        await client.aclose()


async def run_user_reconcile(user_id: str, settings: Optional[Settings] = None) -> ReconcileReport:
    settings = settings or get_settings()
    client = get_marketplace_client(settings=settings)
    try:
        async with async_session() as db:
            return await ListingReconciler(db, client).reconcile(user_id)
    finally:
        await client.aclose()


async def run_retention(settings: Optional[Settings] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    """DAY rollup, MONTH rollup, then prune every retained table."""
    settings = settings or get_settings()
    results: Dict[str, int] = {}

    async with async_session() as db:
        manager = RetentionManager(db)
        results["rollup_day"] = await manager.rollup(Granularity.DAY, now=now)
        results["rollup_month"] = await manager.rollup(Granularity.MONTH, now=now)

        for table, window in retention_windows(settings).items():
            try:
                results[f"pruned_{table.value}"] = await manager.prune(table, window, now=now)
            except RetentionError as e:
                logger.warning(f"Skipping prune of {table.value}: {e}")
                results[f"pruned_{table.value}"] = 0

    logger.info(f"Retention run complete: {results}")
    return results
