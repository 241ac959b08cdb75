"""Sync state model: feed types, statuses, the append-only state table and attempt results."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlmodel import Field, SQLModel


class FeedType(str, Enum):
    """Independently tracked categories of exportable data.

    Values match the sync type codes stored in the host's reference list.
    """
    USAGE_RECORDS = "SESSION_USAGE_AUDITS"
    MODULE_METADATA = "MODULE_METADATA"

    @property
    def default_window_days(self) -> Optional[int]:
        """Lookback used when no successful sync exists yet.

        Metadata has no natural decay window, so its first run exports the
        full snapshot.
        """
        if self is FeedType.USAGE_RECORDS:
            return 7
        return None

    @property
    def categories(self) -> Tuple[str, ...]:
        if self is FeedType.USAGE_RECORDS:
            return ("sessions", "audits")
        return ("modules",)

    @classmethod
    def parse(cls, text: str) -> "FeedType":
        """Accept either the stored code or the member name, case-insensitively."""
        key = text.strip().upper()
        for member in cls:
            if key in (member.value, member.name):
                return member
        raise ValueError(f"Unknown feed type: {text}")


class SyncStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SyncState(SQLModel, table=True):
    """One row per sync attempt. Rows are appended, never updated or deleted."""

    id: Optional[int] = Field(default=None, primary_key=True)
    feed_type: str = Field(index=True)
    timestamp: Optional[datetime] = Field(default=None, index=True)  # attempt end, UTC
    status: str
    log: Optional[str] = None


@dataclass
class SyncAttemptResult:
    """Outcome of one execute_sync() call. Converted into a SyncState row."""
    feed_type: FeedType
    start_time: datetime
    end_time: Optional[datetime] = None
    status: Optional[SyncStatus] = None
    message: str = ""
    job_id: Optional[str] = None
    counts: Dict[str, int] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def sessions_count(self) -> int:
        return self.counts.get("sessions", 0)

    @property
    def audits_count(self) -> int:
        return self.counts.get("audits", 0)

    @property
    def modules_count(self) -> int:
        return self.counts.get("modules", 0)

    @property
    def total_records(self) -> int:
        return sum(self.counts.values())

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)
