"""
Main entrypoint.

Usage:
    python -m analytics_exporter                  # starts the cron scheduler
    python -m analytics_exporter sync             # runs every feed type once
    python -m analytics_exporter sync --feed MODULE_METADATA
    python -m analytics_exporter health --feed usage_records
    uvicorn analytics_exporter.api.main:app --host 0.0.0.0 --port 8000  # status API
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    from analytics_exporter.config import get_settings

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _run_sync(feed: Optional[str]) -> int:
    from analytics_exporter.export.sync_service import build_sync_service
    from analytics_exporter.models.sync import FeedType, SyncStatus

    with build_sync_service() as service:
        if feed:
            result = service.execute_sync(FeedType.parse(feed))
            print(result.message)
            return 0 if result.status is SyncStatus.SUCCESS else 1
        summary = service.run_all()

    for line in summary.lines:
        print(line)
    return 0 if summary.ok else 1


def _run_health(feed: str) -> int:
    from analytics_exporter.db.engine import get_engine
    from analytics_exporter.export.state_store import SyncStateStore
    from analytics_exporter.export.sync_service import health_error_report, health_report
    from analytics_exporter.models.sync import FeedType

    feed_type = FeedType.parse(feed)
    try:
        report = health_report(SyncStateStore(get_engine()).health_state(feed_type))
    except Exception as exc:
        logger.error("Health check failed for %s: %s", feed_type.value, exc)
        print(json.dumps(health_error_report(exc), indent=2))
        return 1
    print(json.dumps(report, indent=2))
    return 0


def _run_scheduler() -> int:
    from analytics_exporter.config import get_settings
    from analytics_exporter.db.engine import get_engine
    from analytics_exporter.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(get_engine())
    logger.info(
        "Scheduler started (analytics sync at %02d:%02d UTC)",
        settings.sync_hour,
        settings.sync_minute,
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="analytics_exporter",
        description="Export host analytics to the remote receiver",
    )
    sub = parser.add_subparsers(dest="command")

    sync_parser = sub.add_parser("sync", help="Run a sync once and exit")
    sync_parser.add_argument("--feed", default=None, help="Feed type (default: all)")

    health_parser = sub.add_parser("health", help="Print the health of a feed as JSON")
    health_parser.add_argument("--feed", default="SESSION_USAGE_AUDITS", help="Feed type")

    sub.add_parser("schedule", help="Run the cron scheduler (default)")

    args = parser.parse_args(argv)
    _configure_logging()

    if args.command == "sync":
        return _run_sync(args.feed)
    if args.command == "health":
        return _run_health(args.feed)
    return _run_scheduler()


if __name__ == "__main__":
    sys.exit(main())
