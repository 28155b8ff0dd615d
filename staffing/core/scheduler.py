"""Background job scheduler for role statistics reconciliation."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from staffing.core.config import settings
from staffing.core.database import engine
from staffing.staff.responses import reconcile_role_stats

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def reconcile_job():
    """Background role_stats reconciliation job."""
    try:
        with Session(engine) as session:
            stats = reconcile_role_stats(session)
            logger.info(f"Role stats reconciliation completed: {stats}")
    except Exception as e:
        logger.error(f"Role stats reconciliation failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        reconcile_job,
        trigger=IntervalTrigger(minutes=settings.stats_reconcile_interval_minutes),
        id="role_stats_reconcile",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, reconciling role stats every "
        f"{settings.stats_reconcile_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
