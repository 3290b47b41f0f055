"""APScheduler integration for FastAPI.

Runs the reconciliation pass on a fixed interval when
``RECONCILE_INTERVAL_MINUTES`` is set.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tradeguard.config import settings
from tradeguard.errors import TradeGuardError

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

RECONCILE_JOB_ID = "reconcile"


async def run_scheduled_reconciliation():
    """Scheduled wrapper: a failed pass is logged and retried on the next tick."""
    from tradeguard.engine.reconciler import run_reconciliation_pass

    try:
        report = await run_reconciliation_pass(settings)
        if report.orphaned:
            logger.info(f"Scheduled reconcile repaired: {', '.join(report.orphaned)}")
    except TradeGuardError as e:
        logger.error(f"Scheduled reconcile failed: {e}")


def add_reconcile_job(interval_minutes: int):
    """Add or replace the periodic reconciliation job."""
    scheduler.add_job(
        run_scheduled_reconciliation,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=RECONCILE_JOB_ID,
        name="Position reconciliation",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled reconciliation every {interval_minutes}m")


def start_scheduler():
    """Start the scheduler with the reconciliation job if an interval is configured."""
    if settings.reconcile_interval_minutes > 0:
        add_reconcile_job(settings.reconcile_interval_minutes)
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if getattr(j, "next_run_time", None) else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
