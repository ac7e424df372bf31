"""
Scheduled jobs for the sync engine.

Two jobs run inside the FastAPI process:
- periodic sync: every user with syncable inventory, a bounded number at a time
- nightly retention: DAY rollup, MONTH rollup, then pruning
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import SyncStep
from marketsync.core.exceptions import MarketplaceAuthError
from marketsync.database import async_session
from marketsync.services.inventory_source import InventorySource
from marketsync.services.jobs import run_retention, run_user_reconcile, run_user_sync

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


async def sync_all_users_task(settings: Optional[Settings] = None) -> dict:
    """Sync (then reconcile listings for) every user, SCHEDULER_MAX_CONCURRENT_USERS at a time."""
    settings = settings or get_settings()
    logger.info("=== SCHEDULED SYNC STARTING ===")

    async with async_session() as db:
        user_ids = await InventorySource(db).user_ids()

    semaphore = asyncio.Semaphore(max(1, settings.SCHEDULER_MAX_CONCURRENT_USERS))
    outcome = {"users": len(user_ids), "completed": 0, "failed": 0, "reconcile_failed": 0}

    async def _one(user_id: str) -> None:
        async with semaphore:
            try:
                report = await run_user_sync(user_id, settings=settings)
            except Exception as e:
                logger.error(f"Sync for {user_id} crashed: {e}", exc_info=True)
                outcome["failed"] += 1
                return
            if report.state is not SyncStep.COMPLETED:
                outcome["failed"] += 1
                return
            outcome["completed"] += 1
            try:
                await run_user_reconcile(user_id, settings=settings)
            except MarketplaceAuthError as e:
                logger.error(f"Listing reconcile for {user_id} rejected: {e}")
                outcome["reconcile_failed"] += 1
            except Exception as e:
                logger.error(f"Listing reconcile for {user_id} crashed: {e}", exc_info=True)
                outcome["reconcile_failed"] += 1

    await asyncio.gather(*(_one(user_id) for user_id in user_ids))
    logger.info(f"Scheduled sync finished: {outcome}")
    return outcome


async def retention_task(settings: Optional[Settings] = None) -> dict:
    logger.info("Starting scheduled retention run")
    return await run_retention(settings=settings)


def job_listener(event):
    """Log each job run with the outcome dict the task returned"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} finished at {datetime.now():%Y-%m-%d %H:%M:%S}: {event.retval}")


def create_scheduler(settings: Optional[Settings] = None) -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = settings or get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    if settings.SCHEDULER_ENABLED:
        scheduler.add_job(
            sync_all_users_task,
            CronTrigger(hour=settings.SYNC_CRON_HOUR, minute=0),
            id="sync_all_users",
            name="Sync All Users",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=3600,
        )
        logger.info(f"Scheduled sync job added (hour={settings.SYNC_CRON_HOUR})")

        scheduler.add_job(
            retention_task,
            CronTrigger(hour=settings.RETENTION_CRON_HOUR, minute=15),
            id="retention",
            name="Rollup and Prune History",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(f"Retention job added for {settings.RETENTION_CRON_HOUR}:15 daily")
    else:
        logger.info("Scheduled jobs are disabled. Set SCHEDULER_ENABLED=true to enable")

    return scheduler


async def start_scheduler(settings: Optional[Settings] = None):
    """Start the scheduler"""
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler(settings)

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")
        for job in scheduler.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped successfully")
    scheduler = None


async def get_scheduler_status():
    """Get current scheduler status and job information"""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in scheduler.get_jobs()
        ],
    }
