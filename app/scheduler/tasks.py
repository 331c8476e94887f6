"""
Background Scheduler
Daily batch credit reset at a fixed UTC time
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from typing import Optional

from config import settings
from app.credits.dependencies import get_credit_store
from app.credits.manager import CreditManager
from app.scheduler.credit_reset import CreditResetJob

logger = logging.getLogger(__name__)

DAILY_CREDIT_RESET_JOB_ID = "daily_credit_reset"

scheduler = AsyncIOScheduler(timezone="UTC")


async def _build_credit_manager() -> CreditManager:
    return CreditManager(await get_credit_store())


credit_reset_job = CreditResetJob(_build_credit_manager)


def start_scheduler():
    """Start background job scheduler"""

    scheduler.add_job(
        run_daily_credit_reset,
        'cron',
        hour=settings.CREDIT_RESET_CRON_HOUR,
        minute=settings.CREDIT_RESET_CRON_MINUTE,
        timezone="UTC",
        id=DAILY_CREDIT_RESET_JOB_ID,
        name='Reset daily credits for all eligible users',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    scheduler.start()
    logger.info(
        f"[OK] Daily credit reset job scheduled "
        f"(runs at {settings.CREDIT_RESET_CRON_HOUR:02d}:{settings.CREDIT_RESET_CRON_MINUTE:02d} UTC)"
    )

    next_run = _next_run_time()
    if next_run:
        logger.info(f"Next credit reset: {next_run.isoformat()}")


def shutdown_scheduler():
    """Stop scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("[OK] Scheduler stopped")


async def run_daily_credit_reset():
    """Scheduled entry point; failures are logged, the next day retries"""
    try:
        result = await credit_reset_job.run("scheduled")
        if result is not None:
            logger.info(f"Daily credit reset job completed: {result}")
    except Exception as e:
        logger.error(f"Error in daily credit reset job: {str(e)}", exc_info=True)


async def manual_credit_reset() -> Optional[dict]:
    """Admin-triggered run through the same guard as the schedule"""
    return await credit_reset_job.run("manual")


def _next_run_time():
    job = scheduler.get_job(DAILY_CREDIT_RESET_JOB_ID)
    if job is None:
        return None
    # Jobs added before start() have no next_run_time yet
    return getattr(job, "next_run_time", None)


def get_job_status() -> dict:
    next_run = _next_run_time()
    return {
        "dailyCreditReset": {
            "scheduled": scheduler.get_job(DAILY_CREDIT_RESET_JOB_ID) is not None,
            "schedulerRunning": scheduler.running,
            "nextExecution": next_run.isoformat() if next_run else None,
            "lastResult": credit_reset_job.last_result,
            "lastTrigger": credit_reset_job.last_trigger,
        },
        "isJobRunning": credit_reset_job.is_running,
    }
