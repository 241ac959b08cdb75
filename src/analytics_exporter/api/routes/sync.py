"""Sync trigger, health and status routes."""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from analytics_exporter.db.engine import get_engine
from analytics_exporter.export.payload import format_timestamp
from analytics_exporter.export.state_store import SyncStateStore
from analytics_exporter.export.sync_service import (
    build_sync_service,
    health_error_report,
    health_report,
)
from analytics_exporter.models.sync import FeedType

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    feed_type: Optional[str] = None  # If None, runs every feed type


class FeedStatusResponse(BaseModel):
    feed_type: str
    status: str
    last_sync_timestamp: Optional[str]
    last_status: Optional[str]
    last_job_id: Optional[str]
    counts: Dict[str, int] = {}
    message: Optional[str] = None
    error: Optional[str] = None


def get_state_store() -> SyncStateStore:
    return SyncStateStore(get_engine())


def _parse_feed(value: Optional[str]) -> Optional[FeedType]:
    if value is None:
        return None
    try:
        return FeedType.parse(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _do_sync(feed_type: Optional[FeedType] = None) -> None:
    """Background task: build the production service and run."""
    with build_sync_service() as service:
        if feed_type is None:
            service.run_all()
        else:
            service.execute_sync(feed_type)


@router.post("/trigger")
def trigger_sync(request: SyncTriggerRequest, background_tasks: BackgroundTasks):
    """
    Trigger an on-demand export.
    Returns immediately; the sync runs in the background.
    """
    feed_type = _parse_feed(request.feed_type)
    background_tasks.add_task(_do_sync, feed_type)
    return {
        "message": "Sync started",
        "feed_type": feed_type.value if feed_type else None,
    }


@router.get("/health")
def sync_health(
    feed_type: str = FeedType.USAGE_RECORDS.value,
    store: SyncStateStore = Depends(get_state_store),
):
    """Last attempt for a feed: no_data / degraded / ok, or 500 unhealthy."""
    feed = _parse_feed(feed_type)
    try:
        state = store.health_state(feed)
    except Exception as exc:
        logger.error("Health check failed for %s: %s", feed.value, exc)
        return JSONResponse(status_code=500, content=health_error_report(exc))
    return health_report(state)


@router.get("/status", response_model=List[FeedStatusResponse])
def sync_status(store: SyncStateStore = Depends(get_state_store)):
    """Latest attempt of every feed type."""
    out = []
    for feed in FeedType:
        state = store.health_state(feed)
        if state is None:
            out.append(FeedStatusResponse(
                feed_type=feed.value,
                status="never_run",
                last_sync_timestamp=None,
                last_status=None,
                last_job_id=None,
            ))
            continue
        out.append(FeedStatusResponse(
            feed_type=feed.value,
            status="ok" if state.succeeded else "degraded",
            last_sync_timestamp=format_timestamp(state.timestamp),
            last_status=state.status,
            last_job_id=state.job_id,
            counts=state.parsed.counts,
            message=state.parsed.message,
            error=state.parsed.error,
        ))
    return out
