"""
APScheduler Configuration

Background job scheduler running inside the API process.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from app.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone='Asia/Kolkata'
)


async def run_pending_payment_sweep():
    """Scheduler entry point for the pending payment sweep."""
    from app.jobs.order_jobs import check_pending_payments

    try:
        await check_pending_payments()
    except Exception as e:
        logger.error(f"Job 'check_pending_payments' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if scheduler.running:
        return

    if not settings.PAYMENT_SWEEP_ENABLED:
        logger.info("Pending payment sweep disabled, scheduler not started")
        return

    scheduler.add_job(
        run_pending_payment_sweep,
        'interval',
        minutes=settings.PAYMENT_SWEEP_INTERVAL_MINUTES,
        id='check_pending_payments',
        name='Check Pending Payments',
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Background job scheduler started")

    # Log all scheduled jobs
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")

