"""
Payload builder: extracted records → JSON-ready document.

Pure functions only. No DB access, no clock reads: the export time is part
of PayloadMetadata, which the caller builds. Output for identical input is
identical, so the builder is safe to call repeatedly.

Two document shapes, one per feed type:

  schema "1.0"                 sessions + usage_audits
  schema "module_metadata_v1"  records (installed modules)

Every timestamp is rendered as UTC with microseconds and an explicit
offset, e.g. "2025-01-15T07:30:00.000000+00:00" (never the "Z" form).
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from analytics_exporter.export.data_source import (
    AuditRecord,
    Extraction,
    ModuleRecord,
    SessionRecord,
)
from analytics_exporter.models.sync import FeedType

USAGE_SCHEMA_VERSION = "1.0"
METADATA_SCHEMA_VERSION = "module_metadata_v1"
EXPORTER_VERSION = "1.0.0"

# Closed vocabulary: extend the table for new codes.
LOGIN_STATUS_LABELS = {
    "S": "Success",
    "F": "Failed",
    "L": "Locked",
}
UNKNOWN_LOGIN_STATUS = "Unknown"


@dataclass
class PayloadMetadata:
    source_instance: str
    export_timestamp: datetime
    exporter_version: str = EXPORTER_VERSION
    days_exported: Optional[int] = None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render as yyyy-MM-ddTHH:mm:ss.ffffff+00:00. Naive datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def map_login_status(code: Optional[str]) -> str:
    if code is None:
        return UNKNOWN_LOGIN_STATUS
    return LOGIN_STATUS_LABELS.get(code, code)


# ─── Records feed ─────────────────────────────────────────────────────────────

def session_to_dict(session: SessionRecord) -> Dict[str, Any]:
    return {
        "session_id": session.session_id,
        "username": session.username,
        "user_id": session.created_by,
        "login_time": format_timestamp(session.created),
        # An active session has not logged out yet; the last ping marks logout otherwise.
        "logout_time": None if session.session_active else format_timestamp(session.last_ping),
        "session_active": session.session_active,
        "login_status": map_login_status(session.login_status),
        "server_url": session.server_url,
        "created": format_timestamp(session.created),
        "created_by": session.created_by,
        "updated": format_timestamp(session.updated),
        "updated_by": session.updated_by,
        "ip": session.ip,
    }


def audit_to_dict(audit: AuditRecord) -> Dict[str, Any]:
    return {
        "usage_audit_id": audit.usage_audit_id,
        "session_id": audit.session_id,
        "username": audit.username,
        "command": audit.command,
        "execution_time": format_timestamp(audit.created),
        "process_time_ms": float(audit.process_time_ms) if audit.process_time_ms is not None else None,
        "module_id": audit.module_id,
        "module_name": audit.module_name,
        "module_javapackage": audit.module_javapackage,
        "module_version": audit.module_version,
        "core_version": audit.core_version if audit.core_version is not None else "",
        "object_id": audit.object_id,
        "object_type": audit.object_type,
        "window_id": audit.window_id,
        "window_name": audit.window_name,
        "process_id": audit.process_id,
        "process_name": audit.process_name,
        "record_count": 0,
        "created": format_timestamp(audit.created),
        "created_by": audit.created_by,
        "ip": audit.ip,
    }


def build_usage_document(extraction: Extraction, metadata: PayloadMetadata) -> Dict[str, Any]:
    meta: Dict[str, Any] = {
        "source_instance": metadata.source_instance,
        "export_timestamp": format_timestamp(metadata.export_timestamp),
        "exporter_version": metadata.exporter_version,
    }
    if metadata.days_exported is not None:
        meta["days_exported"] = metadata.days_exported

    return {
        "schema_version": USAGE_SCHEMA_VERSION,
        "metadata": meta,
        "sessions": [session_to_dict(s) for s in extraction.sessions],
        "usage_audits": [audit_to_dict(a) for a in extraction.audits],
    }


# ─── Metadata feed ────────────────────────────────────────────────────────────

def module_to_dict(module: ModuleRecord) -> Dict[str, Any]:
    return {
        "ad_module_id": module.module_id,
        "javapackage": module.javapackage,
        "name": module.name,
        "version": module.version,
        "type": module.type,
        "iscommercial": module.is_commercial,
        "enabled": module.enabled,
    }


def build_metadata_document(extraction: Extraction, metadata: PayloadMetadata) -> Dict[str, Any]:
    return {
        "schema_version": METADATA_SCHEMA_VERSION,
        "metadata": {
            "source_instance": metadata.source_instance,
            "check_type": METADATA_SCHEMA_VERSION,
            "storage_only": True,
            "exported_at": format_timestamp(metadata.export_timestamp),
        },
        "records": [module_to_dict(m) for m in extraction.modules],
    }


def build_document(
    feed_type: FeedType, extraction: Extraction, metadata: PayloadMetadata
) -> Dict[str, Any]:
    """Dispatch to the document shape of the given feed type."""
    if feed_type is FeedType.USAGE_RECORDS:
        return build_usage_document(extraction, metadata)
    if feed_type is FeedType.MODULE_METADATA:
        return build_metadata_document(extraction, metadata)
    raise ValueError(f"Unknown feed type: {feed_type}")
