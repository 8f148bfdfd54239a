"""
Background job definitions using APScheduler.

Jobs include:
- Commission reconciliation sweep over every Finalized job
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from commission_tracker.config import settings
from commission_tracker.db import get_db_context
from commission_tracker.services.reconciliation import BatchStatus, process_batch

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def reconciliation_job():
    """Reconcile commissions for all Finalized jobs."""
    logger.debug("Running commission reconciliation job")
    try:
        async with get_db_context() as db:
            result = await process_batch(db)
    except Exception as e:
        logger.error(f"Commission reconciliation job error: {e}")
        return

    if result.status is BatchStatus.HARD_FAILURE:
        logger.error("Commission reconciliation job rolled back; will retry on next run")
    elif result.created or result.updated:
        logger.info(
            f"Commission reconciliation job: created {result.created}, updated {result.updated}"
        )


def setup_scheduler() -> bool:
    """
    Configure and add all scheduled jobs.

    Called during application startup. Returns False when the sweep is
    disabled (interval of 0 minutes).
    """
    interval = settings.reconcile_interval_minutes
    if interval <= 0:
        logger.info("Commission reconciliation sweep disabled")
        return False

    scheduler.add_job(
        reconciliation_job,
        trigger=IntervalTrigger(minutes=interval),
        id="commission_reconciliation",
        name="Reconcile commissions for finalized jobs",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(f"Scheduler configured: reconciliation every {interval} minutes")
    return True
