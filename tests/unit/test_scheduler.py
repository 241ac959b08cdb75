"""Tests for APScheduler job configuration and the scheduled sync job body."""
from unittest.mock import MagicMock, patch

from apscheduler.schedulers.blocking import BlockingScheduler

from analytics_exporter.scheduler.jobs import JOB_ID, _scheduled_sync, build_scheduler


def service_mock():
    """MagicMock service usable as its own context manager."""
    service = MagicMock()
    service.__enter__.return_value = service
    service.__exit__.return_value = False
    return service


class TestBuildScheduler:
    def test_returns_scheduler(self):
        scheduler = build_scheduler(MagicMock())
        assert isinstance(scheduler, BlockingScheduler)

    def test_sync_job_registered(self):
        scheduler = build_scheduler(MagicMock())
        job_ids = [job.id for job in scheduler.get_jobs()]
        assert JOB_ID in job_ids

    def test_sync_is_cron(self):
        scheduler = build_scheduler(MagicMock())
        job = next(j for j in scheduler.get_jobs() if j.id == JOB_ID)
        assert job.trigger.__class__.__name__ == "CronTrigger"

    def test_sync_time_from_settings(self):
        """Scheduler respects the ANALYTICS_SYNC_HOUR / ANALYTICS_SYNC_MINUTE settings."""
        with patch("analytics_exporter.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.sync_hour = 4
            mock_settings.return_value.sync_minute = 30
            scheduler = build_scheduler(MagicMock())

        job = next(j for j in scheduler.get_jobs() if j.id == JOB_ID)
        fields = {f.name: f for f in job.trigger.fields}
        assert str(fields["hour"]) == "4"
        assert str(fields["minute"]) == "30"

    def test_job_never_overlaps(self):
        scheduler = build_scheduler(MagicMock())
        job = next(j for j in scheduler.get_jobs() if j.id == JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce is True

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        scheduler = build_scheduler(MagicMock())
        assert not scheduler.running


# ─── _scheduled_sync job body ─────────────────────────────────────────────────

class TestScheduledSyncJob:
    """build_sync_service is imported lazily inside the job, so it is patched
    at its source module path."""

    def test_runs_all_feeds(self):
        engine = MagicMock()
        service = service_mock()
        with patch(
            "analytics_exporter.export.sync_service.build_sync_service", return_value=service
        ) as factory:
            _scheduled_sync(engine=engine)

        factory.assert_called_once_with(engine=engine)
        service.run_all.assert_called_once_with()
        service.__exit__.assert_called_once()

    def test_exception_does_not_propagate(self):
        """The job catches everything so the scheduler stays alive."""
        with patch(
            "analytics_exporter.export.sync_service.build_sync_service",
            side_effect=Exception("database is locked"),
        ):
            _scheduled_sync(engine=MagicMock())  # should not raise

    def test_failed_summary_does_not_raise(self):
        service = service_mock()
        service.run_all.return_value.ok = False
        service.run_all.return_value.failures = 1
        with patch(
            "analytics_exporter.export.sync_service.build_sync_service", return_value=service
        ):
            _scheduled_sync(engine=MagicMock())

    def test_service_closed_when_run_fails(self):
        service = service_mock()
        service.run_all.side_effect = RuntimeError("database is locked")
        with patch(
            "analytics_exporter.export.sync_service.build_sync_service", return_value=service
        ):
            _scheduled_sync(engine=MagicMock())
        service.__exit__.assert_called_once()
