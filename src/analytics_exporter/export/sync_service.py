"""
SyncService: orchestrates one export cycle per feed type.

Flow for execute_sync(feed_type):
  1. Resolve the source instance name (best-effort, falls back to "")
  2. Read the last SUCCESS state → `since`
  3. Pick the window: since set → (since, no day cap);
     otherwise (None, feed_type.default_window_days)
  4. Extract records from the data source
  5. Zero records → SUCCESS "no new data", no delivery
  6. Build the payload document and deliver it
  7. Record the attempt (one SyncState row, success or failure)

Nothing raises out of execute_sync() for operational failures: extraction,
serialization and delivery errors become a FAILED result. Only an unknown
feed type (a caller bug) raises ValueError.

The zero-record path still writes a SUCCESS row with a fresh timestamp, so
the next incremental window starts where the no-op attempt ended.
Records committed to the host with an older `created` value after that
no-op read will not be picked up by later runs.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from analytics_exporter.export.data_source import DataSource, Extraction
from analytics_exporter.export.payload import PayloadMetadata, build_document, format_timestamp
from analytics_exporter.export.state_store import SyncStateStore
from analytics_exporter.models.sync import FeedType, SyncAttemptResult, SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_FEED_ORDER = (FeedType.USAGE_RECORDS, FeedType.MODULE_METADATA)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncRunSummary:
    """Results of running several feed types back to back."""
    results: List[SyncAttemptResult] = field(default_factory=list)

    @property
    def successes(self) -> int:
        return sum(1 for r in self.results if r.status is SyncStatus.SUCCESS)

    @property
    def failures(self) -> int:
        return len(self.results) - self.successes

    @property
    def ok(self) -> bool:
        return self.failures == 0

    @property
    def lines(self) -> List[str]:
        out = []
        for r in self.results:
            name = r.feed_type.value
            if r.status is not SyncStatus.SUCCESS:
                out.append(f"✗ {name}: {r.message}")
            elif r.feed_type is FeedType.USAGE_RECORDS:
                out.append(f"✓ {name}: {r.sessions_count} sessions, {r.audits_count} audits")
            else:
                out.append(f"✓ {name}: {r.modules_count} modules")
        return out


class SyncService:
    """Runs extract → build → deliver → record for a feed type."""

    def __init__(
        self,
        data_source: DataSource,
        client,
        store: SyncStateStore,
        *,
        instance_name_provider: Optional[Callable[[], str]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            data_source: Anything with extract(feed_type, since, window_days).
            client: ReceiverClient (or a MagicMock in tests) with send(document).
            store: SyncStateStore used for window reads and attempt rows.
            instance_name_provider: Returns the source instance identifier.
            clock: Returns "now" as aware UTC.
        """
        self.data_source = data_source
        self.client = client
        self.store = store
        self.instance_name_provider = instance_name_provider
        self.clock = clock

    def execute_sync(self, feed_type: FeedType) -> SyncAttemptResult:
        """
        Run one sync attempt for a feed type.

        Returns:
            SyncAttemptResult with end_time always set. Inspect `status`.

        Raises:
            ValueError: if feed_type is not a FeedType.
        """
        if not isinstance(feed_type, FeedType):
            raise ValueError(f"Unknown feed type: {feed_type}")

        name = feed_type.value
        logger.info("=== Starting analytics synchronization [%s] ===", name)
        result = SyncAttemptResult(feed_type=feed_type, start_time=self.clock())

        try:
            instance_name = self._instance_name()

            last = self.store.last_successful_state(feed_type)
            since = last.timestamp if last is not None else None
            window_days = None if since is not None else feed_type.default_window_days
            if since is not None:
                logger.info("Incremental sync for %s from %s to now", name, since)
            elif window_days is not None:
                logger.info("No previous sync for %s, exporting last %d days", name, window_days)
            else:
                logger.info("No previous sync for %s, exporting full snapshot", name)

            extraction = self.data_source.extract(feed_type, since=since, window_days=window_days)
            result.counts = dict(extraction.counts)
            total = result.total_records
            logger.info("Extraction complete for %s: %s", name, result.counts)

            if total == 0:
                result.status = SyncStatus.SUCCESS
                result.message = f"[{name}] No new data to send"
                logger.info("No new data for %s, skipping delivery", name)
            else:
                ack = self._deliver(feed_type, extraction, instance_name, window_days)
                result.job_id = ack.job_id
                result.status = SyncStatus.SUCCESS
                result.message = (
                    f"[{name}] Successfully sent {total} records. Job ID: {result.job_id}"
                )

            result.end_time = self.clock()
            self.store.record_attempt(feed_type, result)

        except Exception as exc:
            logger.exception("Synchronization failed for %s: %s", name, exc)
            result.end_time = self.clock()
            result.status = SyncStatus.FAILED
            result.job_id = None
            result.message = f"[{name}] Error: {exc}"
            result.error = exc
            try:
                self.store.record_attempt(feed_type, result)
            except Exception as persist_error:
                logger.error("Failed to persist error state for %s: %s", name, persist_error)

        finally:
            if result.end_time is None:
                result.end_time = self.clock()
            logger.info(
                "=== Synchronization complete [%s] === Status: %s | Duration: %s ms",
                name, result.status.value if result.status else None, result.duration_ms,
            )

        return result

    def run_all(self, feed_types: Optional[Iterable[FeedType]] = None) -> SyncRunSummary:
        """Run each feed type in turn. One feed failing does not stop the others."""
        summary = SyncRunSummary()
        for feed_type in feed_types or DEFAULT_FEED_ORDER:
            summary.results.append(self.execute_sync(feed_type))

        logger.info(
            "Orchestration summary: %d executed, %d successful, %d failed",
            len(summary.results), summary.successes, summary.failures,
        )
        for line in summary.lines:
            logger.info(line)
        if not summary.ok:
            logger.error("Orchestration completed with %d failure(s)", summary.failures)
        return summary

    def health(self, feed_type: FeedType = FeedType.USAGE_RECORDS) -> Dict[str, Any]:
        """Health result for a status surface: never synced / degraded / ok."""
        state = self.store.health_state(feed_type)
        return health_report(state)

    def close(self) -> None:
        """Release the delivery client's connection pool."""
        self.client.close()

    def __enter__(self) -> "SyncService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _instance_name(self) -> str:
        if self.instance_name_provider is None:
            return ""
        try:
            name = self.instance_name_provider() or ""
        except Exception as exc:
            logger.warning("Could not determine instance name, using default: %s", exc)
            return ""
        if not name.strip():
            logger.warning("Empty system identifier, instance name will be empty")
        return name

    def _deliver(
        self,
        feed_type: FeedType,
        extraction: Extraction,
        instance_name: str,
        window_days: Optional[int],
    ):
        metadata = PayloadMetadata(
            source_instance=instance_name,
            export_timestamp=self.clock(),
            days_exported=window_days,
        )
        document = build_document(feed_type, extraction, metadata)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("========== JSON PAYLOAD START ==========")
            logger.debug(json.dumps(document, ensure_ascii=False))
            logger.debug("========== JSON PAYLOAD END ==========")

        logger.info("Sending %s data to receiver...", feed_type.value)
        ack = self.client.send(document)
        logger.info("Data sent successfully. Job ID: %s", ack.job_id)
        return ack


def health_report(state) -> Dict[str, Any]:
    """Build the health query result from a StateSnapshot (or None)."""
    if state is None:
        return {
            "status": "no_data",
            "health": "unknown",
            "message": "No synchronization has been performed yet",
        }
    return {
        "status": "healthy",
        "health": "ok" if state.succeeded else "degraded",
        "last_sync_timestamp": format_timestamp(state.timestamp),
        "last_job_id": state.job_id,
        "last_status": state.status,
        "log": state.log,
    }


def health_error_report(exc: BaseException) -> Dict[str, Any]:
    """Health result when the state store itself cannot be read."""
    return {
        "status": "error",
        "health": "unhealthy",
        "error": str(exc),
    }


def build_sync_service(engine=None, settings=None) -> SyncService:
    """Wire the production data source, receiver client and state store."""
    from analytics_exporter.config import get_settings
    from analytics_exporter.db.context import HostContext
    from analytics_exporter.db.engine import get_engine
    from analytics_exporter.export.data_source import SqlDataSource
    from analytics_exporter.export.delivery import ReceiverClient

    settings = settings or get_settings()
    engine = engine or get_engine()
    context = HostContext()

    data_source = SqlDataSource(engine, context, source_instance=settings.source_instance)
    client = ReceiverClient(
        settings.receiver_url,
        connect_timeout=settings.connect_timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
    )
    store = SyncStateStore(engine, context)
    return SyncService(
        data_source,
        client,
        store,
        instance_name_provider=data_source.instance_name,
    )
