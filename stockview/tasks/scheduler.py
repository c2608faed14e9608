import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from stockview.services.container import ServiceContainer

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def run_housekeeping(services: ServiceContainer):
    """
    Scheduled task to expire held OTP values and purge old finished
    scrape sessions.
    """
    try:
        await services.housekeeping()
    except Exception as e:
        logger.error(f"Housekeeping failed: {e}", exc_info=True)


def start_scheduler(services: ServiceContainer):
    """Start the APScheduler with the housekeeping job."""
    interval = services.settings.housekeeping_interval_seconds

    scheduler.add_job(
        run_housekeeping,
        trigger=IntervalTrigger(seconds=interval),
        args=[services],
        id="housekeeping",
        name="Purge expired OTPs and finished scrape sessions",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started with {interval}s housekeeping interval")


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown complete")
