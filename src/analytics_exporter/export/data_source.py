"""
Data source: reads exportable records from the host database.

The orchestrator only depends on the DataSource protocol:

    extract(feed_type, since, window_days) -> Extraction

SqlDataSource is the bundled implementation over the host tables in
analytics_exporter.models.host. It resolves the auxiliary lookups
(tab → window → module, process → module, core version) so the payload
builder stays a pure transformation. Lookups are best-effort: a failed
lookup leaves the field as None and is logged, it never aborts extraction.

Window rule (applied to the `created` column of every table):
  - since given          → created > since
  - window_days given    → created >= now - window_days
  - neither              → no time filter (full snapshot)
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from sqlmodel import Session, col, select

from analytics_exporter.db.context import HostContext
from analytics_exporter.export.errors import ExtractionError
from analytics_exporter.models.host import (
    LoginSession,
    Module,
    Process,
    SystemInfo,
    Tab,
    UsageAudit,
    Window,
)
from analytics_exporter.models.sync import FeedType

logger = logging.getLogger(__name__)

POS_LOGIN_STATUS = "OBPOS_POS"
PROCESS_COMMAND = "DEFAULT"
CORE_MODULE_ID = "0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Extracted records ────────────────────────────────────────────────────────

@dataclass
class SessionRecord:
    session_id: str
    username: Optional[str]
    login_status: Optional[str]     # raw host code, mapped by the payload builder
    session_active: bool
    server_url: Optional[str]
    ip: Optional[str]
    created: Optional[datetime]
    created_by: Optional[str]
    updated: Optional[datetime] = None
    updated_by: Optional[str] = None
    last_ping: Optional[datetime] = None


@dataclass
class AuditRecord:
    usage_audit_id: str
    session_id: Optional[str]
    username: Optional[str]
    command: Optional[str]
    created: Optional[datetime]
    process_time_ms: Optional[float]
    object_id: Optional[str]
    object_type: str                # "P" for processes, "W" for windows
    created_by: Optional[str] = None
    ip: Optional[str] = None
    # Enrichment (None when the lookup did not resolve)
    window_id: Optional[str] = None
    window_name: Optional[str] = None
    process_id: Optional[str] = None
    process_name: Optional[str] = None
    module_id: Optional[str] = None
    module_name: Optional[str] = None
    module_javapackage: Optional[str] = None
    module_version: Optional[str] = None
    core_version: Optional[str] = None


@dataclass
class ModuleRecord:
    module_id: str
    javapackage: str
    name: str
    version: str
    type: str
    is_commercial: bool
    enabled: bool


@dataclass
class Extraction:
    """Records for one feed type plus the day cap that produced them."""
    feed_type: FeedType
    sessions: List[SessionRecord] = field(default_factory=list)
    audits: List[AuditRecord] = field(default_factory=list)
    modules: List[ModuleRecord] = field(default_factory=list)
    window_days: Optional[int] = None

    @property
    def counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in self.feed_type.categories}


def audit_object_type(command: Optional[str]) -> str:
    """Audits with the DEFAULT command are process runs; everything else is a window."""
    return "P" if command == PROCESS_COMMAND else "W"


class DataSource(Protocol):
    def extract(
        self,
        feed_type: FeedType,
        since: Optional[datetime],
        window_days: Optional[int],
    ) -> Extraction:
        ...


# ─── SQL implementation ───────────────────────────────────────────────────────

class SqlDataSource:
    """Reads sessions, usage audits and module metadata with SQLModel."""

    def __init__(
        self,
        engine,
        context: Optional[HostContext] = None,
        *,
        source_instance: str = "",
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            engine: SQLAlchemy engine for the host database.
            context: HostContext used to elevate privileges around reads.
            source_instance: If set, returned by instance_name() instead of
                the identifier stored in the host database.
            clock: Returns "now" as aware UTC; used for day-capped windows.
        """
        self.engine = engine
        self.context = context or HostContext()
        self.source_instance = source_instance
        self.clock = clock

    def instance_name(self) -> str:
        """Human-readable identifier of this host instance ("" if unknown)."""
        if self.source_instance:
            return self.source_instance
        with self.context.session(self.engine) as s:
            info = s.exec(select(SystemInfo)).first()
        if info is None or not info.system_identifier:
            return ""
        return info.system_identifier

    def extract(
        self,
        feed_type: FeedType,
        since: Optional[datetime],
        window_days: Optional[int],
    ) -> Extraction:
        if not isinstance(feed_type, FeedType):
            raise ValueError(f"Unknown feed type: {feed_type}")

        try:
            with self.context.session(self.engine) as s:
                if feed_type is FeedType.USAGE_RECORDS:
                    extraction = Extraction(
                        feed_type=feed_type,
                        sessions=self._extract_sessions(s, since, window_days),
                        audits=self._extract_audits(s, since, window_days),
                        window_days=window_days,
                    )
                else:
                    extraction = Extraction(
                        feed_type=feed_type,
                        modules=self._extract_modules(s, since),
                        window_days=window_days,
                    )
        except Exception as exc:
            logger.error("Error during data extraction for %s: %s", feed_type.value, exc)
            raise ExtractionError(f"Failed to extract {feed_type.value} data: {exc}") from exc

        logger.debug("Extracted %s for %s", extraction.counts, feed_type.value)
        return extraction

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _apply_window(self, stmt, column, since, window_days):
        if since is not None:
            logger.debug("Using incremental export since %s", since)
            return stmt.where(column > since)
        if window_days is not None and window_days > 0:
            cutoff = self.clock() - timedelta(days=window_days)
            logger.debug("Exporting last %d days (cutoff %s)", window_days, cutoff)
            return stmt.where(column >= cutoff)
        return stmt

    def _extract_sessions(self, s: Session, since, window_days) -> List[SessionRecord]:
        # NULL statuses fail the comparison too, so those sessions are skipped
        stmt = select(LoginSession).where(col(LoginSession.login_status) != POS_LOGIN_STATUS)
        stmt = self._apply_window(stmt, col(LoginSession.created), since, window_days)
        stmt = stmt.order_by(col(LoginSession.created).desc())

        return [
            SessionRecord(
                session_id=row.id,
                username=row.username,
                login_status=row.login_status,
                session_active=row.session_active,
                server_url=row.server_url,
                ip=row.remote_address,
                created=row.created,
                created_by=row.created_by,
                updated=row.updated,
                updated_by=row.updated_by,
                last_ping=row.last_ping,
            )
            for row in s.exec(stmt).all()
        ]

    def _extract_audits(self, s: Session, since, window_days) -> List[AuditRecord]:
        stmt = (
            select(UsageAudit, LoginSession)
            .join(LoginSession, col(UsageAudit.session_id) == col(LoginSession.id))
            .where(col(LoginSession.login_status) != POS_LOGIN_STATUS)
        )
        stmt = self._apply_window(stmt, col(UsageAudit.created), since, window_days)
        stmt = stmt.order_by(col(UsageAudit.created).desc())
        rows = s.exec(stmt).all()

        core_version = self._core_version(s) if rows else None
        records = []
        for audit, session in rows:
            record = AuditRecord(
                usage_audit_id=audit.id,
                session_id=session.id,
                username=session.username,
                command=audit.command,
                created=audit.created,
                process_time_ms=audit.process_time,
                object_id=audit.object_id,
                object_type=audit_object_type(audit.command),
                created_by=audit.created_by,
                ip=session.remote_address,
                core_version=core_version,
            )
            self._enrich(s, record)
            records.append(record)
        return records

    def _enrich(self, s: Session, record: AuditRecord) -> None:
        """Resolve window/process and owning module. Best-effort."""
        if not record.object_id:
            return
        module_id = None
        try:
            if record.object_type == "W":
                tab = s.get(Tab, record.object_id)
                window = s.get(Window, tab.window_id) if tab and tab.window_id else None
                if window is not None:
                    record.window_id = window.id
                    record.window_name = window.name
                    module_id = window.module_id
            else:
                process = s.get(Process, record.object_id)
                if process is not None:
                    record.process_id = process.id
                    record.process_name = process.name
                    module_id = process.module_id

            module = s.get(Module, module_id) if module_id else None
            if module is not None:
                record.module_id = module.id
                record.module_name = module.name
                record.module_javapackage = module.javapackage
                record.module_version = module.version
        except Exception as exc:
            logger.warning(
                "Could not resolve %s info for object_id %s: %s",
                "window" if record.object_type == "W" else "process",
                record.object_id,
                exc,
            )

    def _core_version(self, s: Session) -> Optional[str]:
        try:
            core = s.get(Module, CORE_MODULE_ID)
        except Exception as exc:
            logger.warning("Could not resolve core module version: %s", exc)
            return None
        return core.version if core is not None else None

    def _extract_modules(self, s: Session, since) -> List[ModuleRecord]:
        stmt = select(Module).where(col(Module.enabled) == True)  # noqa: E712
        if since is not None:
            stmt = stmt.where(col(Module.created) > since)
            logger.debug("Using incremental export for modules since %s", since)
        else:
            logger.debug("Exporting all active modules (first sync)")
        stmt = stmt.order_by(col(Module.name).asc())

        return [
            ModuleRecord(
                module_id=m.id,
                javapackage=m.javapackage,
                name=m.name,
                version=m.version,
                type=m.type,
                is_commercial=m.is_commercial,
                enabled=m.enabled,
            )
            for m in s.exec(stmt).all()
        ]
