"""
Durable sync state: one appended SyncState row per sync attempt.

Reads:
  last_successful_state(feed)  newest SUCCESS row with a timestamp; drives
                               the next incremental window
  health_state(feed)           newest row regardless of status

The `log` column keeps a fixed text layout so rows written by older
exporters stay readable:

    Job ID: <job id | N/A>
    Sessions: <n>          (one line per non-zero category)
    Message: <text>
    Error: <text>          (failures only)

format_sync_log() and parse_sync_log() are the only places that know this
layout; everything else works with SyncLog / StateSnapshot.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional

from sqlmodel import col, select

from analytics_exporter.db.context import HostContext
from analytics_exporter.models.sync import FeedType, SyncAttemptResult, SyncState, SyncStatus

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "Job ID: "
MESSAGE_PREFIX = "Message: "
ERROR_PREFIX = "Error: "
NO_JOB_ID = "N/A"

# Category key → label used in the log text, in output order.
CATEGORY_LABELS = {
    "sessions": "Sessions",
    "audits": "Audits",
    "modules": "Modules",
}


@dataclass
class SyncLog:
    """Typed view of a SyncState.log value."""
    job_id: Optional[str] = None
    counts: Dict[str, int] = field(default_factory=dict)
    message: Optional[str] = None
    error: Optional[str] = None


@dataclass
class StateSnapshot:
    """A SyncState row with its log already parsed."""
    feed_type: FeedType
    timestamp: Optional[datetime]
    status: str
    log: Optional[str]
    parsed: SyncLog

    @property
    def job_id(self) -> Optional[str]:
        return self.parsed.job_id

    @property
    def succeeded(self) -> bool:
        return self.status == SyncStatus.SUCCESS.value


def format_sync_log(
    job_id: Optional[str],
    counts: Mapping[str, int],
    message: str,
    error: Optional[str] = None,
) -> str:
    lines = [f"{JOB_ID_PREFIX}{job_id if job_id is not None else NO_JOB_ID}"]
    for key, label in CATEGORY_LABELS.items():
        count = counts.get(key, 0)
        if count > 0:
            lines.append(f"{label}: {count}")
    text = "\n".join(lines) + "\n" + f"{MESSAGE_PREFIX}{message}"
    if error is not None:
        text += f"\n{ERROR_PREFIX}{error}"
    return text


def parse_job_id(text: Optional[str]) -> Optional[str]:
    """Value after "Job ID: " up to the next newline; "N/A" or absent → None."""
    if not text or JOB_ID_PREFIX not in text:
        return None
    value = text[text.index(JOB_ID_PREFIX) + len(JOB_ID_PREFIX):]
    value = value.split("\n", 1)[0].strip()
    if value == NO_JOB_ID:
        return None
    return value


def parse_sync_log(text: Optional[str]) -> SyncLog:
    parsed = SyncLog(job_id=parse_job_id(text))
    if not text:
        return parsed

    labels = {label: key for key, label in CATEGORY_LABELS.items()}
    lines = text.split("\n")
    for i, line in enumerate(lines):
        if line.startswith(MESSAGE_PREFIX):
            # Messages may span lines; the error line (if any) ends them.
            rest = lines[i:]
            body = "\n".join(rest)[len(MESSAGE_PREFIX):]
            marker = f"\n{ERROR_PREFIX}"
            if marker in body:
                body, parsed.error = body.split(marker, 1)
            parsed.message = body
            break
        label, sep, value = line.partition(": ")
        if sep and label in labels and value.strip().isdigit():
            parsed.counts[labels[label]] = int(value.strip())
    return parsed


class SyncStateStore:
    """Append-only store of sync attempts, backed by the SyncState table."""

    def __init__(self, engine, context: Optional[HostContext] = None):
        self.engine = engine
        self.context = context or HostContext()

    def record_attempt(self, feed_type: FeedType, result: SyncAttemptResult) -> None:
        """Append one row for the attempt. Persistence errors are logged, not raised."""
        try:
            status = result.status or SyncStatus.FAILED
            row = SyncState(
                feed_type=feed_type.value,
                timestamp=result.end_time,
                status=status.value,
                log=format_sync_log(
                    result.job_id,
                    result.counts,
                    result.message,
                    str(result.error) if result.error is not None else None,
                ),
            )
            with self.context.session(self.engine) as s:
                s.add(row)
                s.commit()
                s.refresh(row)
            logger.info(
                "Persisted sync state %s for %s (status=%s, timestamp=%s)",
                row.id, feed_type.value, row.status, row.timestamp,
            )
        except Exception:
            logger.exception("Failed to persist sync state for %s", feed_type.value)

    def last_successful_state(self, feed_type: FeedType) -> Optional[StateSnapshot]:
        stmt = (
            select(SyncState)
            .where(
                SyncState.feed_type == feed_type.value,
                SyncState.status == SyncStatus.SUCCESS.value,
                col(SyncState.timestamp).is_not(None),
            )
            .order_by(col(SyncState.timestamp).desc(), col(SyncState.id).desc())
            .limit(1)
        )
        snapshot = self._first(feed_type, stmt)
        if snapshot is None:
            logger.info("No previous successful sync found for %s", feed_type.value)
        else:
            logger.info("Found last successful sync for %s: %s", feed_type.value, snapshot.timestamp)
        return snapshot

    def health_state(self, feed_type: FeedType) -> Optional[StateSnapshot]:
        stmt = (
            select(SyncState)
            .where(SyncState.feed_type == feed_type.value)
            .order_by(col(SyncState.timestamp).desc().nulls_last(), col(SyncState.id).desc())
            .limit(1)
        )
        return self._first(feed_type, stmt)

    def _first(self, feed_type: FeedType, stmt) -> Optional[StateSnapshot]:
        with self.context.session(self.engine) as s:
            row = s.exec(stmt).first()
        if row is None:
            return None
        return StateSnapshot(
            feed_type=feed_type,
            timestamp=row.timestamp,
            status=row.status,
            log=row.log,
            parsed=parse_sync_log(row.log),
        )
