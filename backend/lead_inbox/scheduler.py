"""APScheduler configuration for the periodic lead SLA check."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import logging

from lead_inbox.config import settings

logger = logging.getLogger(__name__)

# Create scheduler instance
scheduler = AsyncIOScheduler()


async def run_lead_sla_check():
    """
    Report leads still 'new' past the response-time SLA.
    Called by APScheduler.
    """
    from lead_inbox.database import AsyncSessionLocal
    from lead_inbox.redis_client import redis_client
    from lead_inbox.services.lead_sla import check_lead_sla

    logger.info("Running scheduled lead SLA check...")

    try:
        async with AsyncSessionLocal() as db:
            result = await check_lead_sla(db, redis_client)
        for overdue in result.newly_overdue:
            logger.warning(
                f"   • {overdue.name} ({overdue.source}) waiting {overdue.hours_waiting}h"
                f"{f' at {overdue.preferred_location}' if overdue.preferred_location else ''}"
            )
    except Exception as e:
        logger.error(f"Error in lead SLA check: {e}")


def start_scheduler():
    """
    Initialize and start the APScheduler.

    Jobs:
    - Lead SLA check: SLA_CHECK_SCHEDULE (hourly by default)
    """
    if scheduler.running:
        logger.info("Scheduler already running")
        return

    try:
        scheduler.add_job(
            run_lead_sla_check,
            trigger=CronTrigger.from_crontab(settings.SLA_CHECK_SCHEDULE),
            id='lead_sla_check',
            name='Lead SLA Check',
            replace_existing=True,
            max_instances=1
        )
        logger.info(f"Scheduled: Lead SLA Check ({settings.SLA_CHECK_SCHEDULE})")

        scheduler.start()
        logger.info("APScheduler started successfully")

        for job in scheduler.get_jobs():
            logger.info(f"   • {job.name}: Next run at {job.next_run_time}")

    except Exception as e:
        logger.error(f"Error starting scheduler: {e}")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown()
