"""Tests for the command-line entrypoint.

Commands import their collaborators lazily, so they are patched at their
source module paths.
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from analytics_exporter.__main__ import main
from analytics_exporter.models.sync import FeedType, SyncStatus

BUILD = "analytics_exporter.export.sync_service.build_sync_service"


def service_mock():
    """MagicMock service usable as its own context manager."""
    service = MagicMock()
    service.__enter__.return_value = service
    service.__exit__.return_value = False
    return service


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("analytics_exporter.__main__._configure_logging"):
        yield


class TestSyncCommand:
    def test_runs_all_feeds(self, capsys):
        service = service_mock()
        service.run_all.return_value.ok = True
        service.run_all.return_value.lines = ["✓ MODULE_METADATA: 2 modules"]
        with patch(BUILD, return_value=service):
            code = main(["sync"])
        assert code == 0
        service.run_all.assert_called_once_with()
        service.__exit__.assert_called_once()
        assert "✓ MODULE_METADATA: 2 modules" in capsys.readouterr().out

    def test_failure_exit_code(self):
        service = service_mock()
        service.run_all.return_value.ok = False
        service.run_all.return_value.lines = []
        with patch(BUILD, return_value=service):
            assert main(["sync"]) == 1

    def test_single_feed(self, capsys):
        service = service_mock()
        service.execute_sync.return_value.status = SyncStatus.SUCCESS
        service.execute_sync.return_value.message = "[MODULE_METADATA] No new data to send"
        with patch(BUILD, return_value=service):
            code = main(["sync", "--feed", "module_metadata"])
        assert code == 0
        service.execute_sync.assert_called_once_with(FeedType.MODULE_METADATA)
        assert "No new data" in capsys.readouterr().out


class TestHealthCommand:
    def test_prints_json_from_state_store(self, capsys):
        with patch("analytics_exporter.db.engine.get_engine") as get_engine, \
             patch("analytics_exporter.export.state_store.SyncStateStore") as store_cls, \
             patch(BUILD) as build:
            store_cls.return_value.health_state.return_value = None
            code = main(["health"])
        assert code == 0
        store_cls.assert_called_once_with(get_engine.return_value)
        store_cls.return_value.health_state.assert_called_once_with(FeedType.USAGE_RECORDS)
        build.assert_not_called()
        assert json.loads(capsys.readouterr().out)["status"] == "no_data"

    def test_store_failure_reports_unhealthy(self, capsys):
        with patch("analytics_exporter.db.engine.get_engine"), \
             patch("analytics_exporter.export.state_store.SyncStateStore") as store_cls:
            store_cls.return_value.health_state.side_effect = RuntimeError("db down")
            code = main(["health", "--feed", "module_metadata"])
        assert code == 1
        assert json.loads(capsys.readouterr().out) == {
            "status": "error",
            "health": "unhealthy",
            "error": "db down",
        }


class TestScheduleCommand:
    def test_default_starts_scheduler(self):
        scheduler = MagicMock()
        with patch("analytics_exporter.db.engine.get_engine") as get_engine, \
             patch("analytics_exporter.scheduler.jobs.build_scheduler",
                   return_value=scheduler) as build:
            code = main([])
        assert code == 0
        build.assert_called_once_with(get_engine.return_value)
        scheduler.start.assert_called_once()

    def test_keyboard_interrupt_is_clean_exit(self):
        scheduler = MagicMock()
        scheduler.start.side_effect = KeyboardInterrupt
        with patch("analytics_exporter.db.engine.get_engine"), \
             patch("analytics_exporter.scheduler.jobs.build_scheduler", return_value=scheduler):
            assert main(["schedule"]) == 0
