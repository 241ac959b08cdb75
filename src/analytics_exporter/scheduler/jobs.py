"""
APScheduler job for the periodic analytics export.

One cron trigger per day runs every feed type in sequence. The job never
overlaps itself (max_instances=1) and missed runs are coalesced, since a
second concurrent run for the same feed would read the same `since` and
ship overlapping windows.
"""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.blocking import BlockingScheduler

from analytics_exporter.config import get_settings

logger = logging.getLogger(__name__)

JOB_ID = "analytics_sync"


def build_scheduler(engine) -> BlockingScheduler:
    """
    Create and configure the scheduler.

    Args:
        engine: SQLAlchemy engine passed to the sync service.

    Returns:
        Configured BlockingScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = BlockingScheduler(timezone="UTC")

    scheduler.add_job(
        _scheduled_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=settings.sync_minute,
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"engine": engine},
    )

    return scheduler


def _scheduled_sync(engine) -> None:
    """Run all feed types. Exceptions are logged so the scheduler stays alive."""
    from analytics_exporter.export.sync_service import build_sync_service

    logger.info("Scheduled analytics sync starting at %s", datetime.now(timezone.utc).isoformat())

    try:
        with build_sync_service(engine=engine) as service:
            summary = service.run_all()
        if not summary.ok:
            logger.error("Scheduled sync finished with %d failure(s)", summary.failures)
    except Exception as exc:
        logger.error("Scheduled sync failed: %s", exc)
