"""Tests for feed types, attempt results and host context elevation."""
from datetime import datetime, timedelta

import pytest

from analytics_exporter.db.context import ADMIN_MODE_KEY, HostContext
from analytics_exporter.models.sync import FeedType, SyncAttemptResult, SyncStatus


class TestFeedType:
    def test_default_windows(self):
        assert FeedType.USAGE_RECORDS.default_window_days == 7
        assert FeedType.MODULE_METADATA.default_window_days is None

    def test_categories(self):
        assert FeedType.USAGE_RECORDS.categories == ("sessions", "audits")
        assert FeedType.MODULE_METADATA.categories == ("modules",)

    @pytest.mark.parametrize("text,expected", [
        ("SESSION_USAGE_AUDITS", FeedType.USAGE_RECORDS),
        ("usage_records", FeedType.USAGE_RECORDS),
        ("module_metadata", FeedType.MODULE_METADATA),
        (" MODULE_METADATA ", FeedType.MODULE_METADATA),
    ])
    def test_parse(self, text, expected):
        assert FeedType.parse(text) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            FeedType.parse("invoices")


class TestSyncAttemptResult:
    def test_counts_default_to_zero(self):
        result = SyncAttemptResult(feed_type=FeedType.USAGE_RECORDS, start_time=datetime(2025, 1, 1))
        assert result.sessions_count == 0
        assert result.audits_count == 0
        assert result.modules_count == 0
        assert result.total_records == 0
        assert result.duration_ms is None

    def test_total_and_duration(self):
        start = datetime(2025, 1, 1, 3, 0)
        result = SyncAttemptResult(
            feed_type=FeedType.USAGE_RECORDS,
            start_time=start,
            end_time=start + timedelta(seconds=2),
            status=SyncStatus.SUCCESS,
            counts={"sessions": 3, "audits": 10},
        )
        assert result.total_records == 13
        assert result.duration_ms == 2000


class TestHostContext:
    def test_not_elevated_by_default(self):
        assert HostContext().admin_mode is False

    def test_elevated_inside_block(self):
        context = HostContext()
        with context.elevated():
            assert context.admin_mode is True
        assert context.admin_mode is False

    def test_restored_on_exception(self):
        context = HostContext()
        with pytest.raises(RuntimeError):
            with context.elevated():
                raise RuntimeError("query failed")
        assert context.admin_mode is False
        assert context.depth == 0

    def test_nested_restores_previous_level(self):
        context = HostContext()
        with context.elevated():
            with context.elevated():
                assert context.depth == 2
            assert context.depth == 1
            assert context.admin_mode is True
        assert context.depth == 0

    def test_session_tagged_with_admin_mode(self, engine):
        context = HostContext()
        with context.session(engine) as s:
            assert s.info[ADMIN_MODE_KEY] is True
            assert context.admin_mode is True
        assert context.admin_mode is False
        assert context.depth == 0

    def test_session_restores_mode_on_error(self, engine):
        context = HostContext()
        with pytest.raises(RuntimeError):
            with context.session(engine):
                raise RuntimeError("query failed")
        assert context.depth == 0
