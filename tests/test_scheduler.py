"""Unit tests for the scheduler service.

Tests the SchedulerService including:
- Job registration with correct configuration
- Immediate first run (next_run_time set to now)
- Prevents overlapping runs (max_instances=1)
- Start/shutdown lifecycle
- Trigger now functionality
- Job event logging
"""

import logging
import threading
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, patch

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED

from jobfeed.scheduler import JOB_ID, SchedulerService


class TestSchedulerService:
    """Test suite for SchedulerService."""

    def test_scheduler_initialization(self):
        sync = Mock()
        shutdown_event = threading.Event()

        service = SchedulerService(sync_callable=sync, interval_seconds=300, shutdown_event=shutdown_event)

        assert service.interval_seconds == 300
        assert service.sync_callable is sync
        assert service.shutdown_event is shutdown_event
        assert not service.is_running()

    def test_job_defaults(self):
        with patch("jobfeed.scheduler.service.BackgroundScheduler") as scheduler_cls:
            SchedulerService(sync_callable=Mock(), interval_seconds=600)

        job_defaults = scheduler_cls.call_args.kwargs["job_defaults"]
        assert job_defaults == {"max_instances": 1, "coalesce": True, "misfire_grace_time": 600}

    def test_start_registers_immediate_job(self):
        scheduler = MagicMock()
        service = SchedulerService(sync_callable=Mock(), interval_seconds=1800, scheduler=scheduler)
        before = datetime.now(timezone.utc)

        service.start()

        _, kwargs = scheduler.add_job.call_args
        assert kwargs["id"] == JOB_ID
        assert kwargs["replace_existing"] is True
        assert kwargs["trigger"].interval.total_seconds() == 1800
        assert kwargs["next_run_time"] >= before
        scheduler.start.assert_called_once()

    def test_listener_registered(self):
        scheduler = MagicMock()

        service = SchedulerService(sync_callable=Mock(), interval_seconds=300, scheduler=scheduler)

        scheduler.add_listener.assert_called_once_with(
            service._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES
        )

    def test_start_runs_first_sync_immediately_and_shutdown(self):
        ran = threading.Event()
        shutdown_event = threading.Event()
        service = SchedulerService(
            sync_callable=ran.set, interval_seconds=300, shutdown_event=shutdown_event
        )

        service.start()
        try:
            assert service.is_running()
            assert ran.wait(timeout=5)
            assert service.get_next_run_time() is not None
        finally:
            service.shutdown(wait=False)

        assert not service.is_running()
        assert shutdown_event.is_set()

    def test_overlapping_runs_prevented(self):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_sync():
            calls.append(time.monotonic())
            started.set()
            release.wait(timeout=5)

        service = SchedulerService(sync_callable=slow_sync, interval_seconds=300)
        service.start()
        try:
            assert started.wait(timeout=5)
            # a second submission while the first run holds the only instance slot
            service.scheduler.get_job(JOB_ID).modify(next_run_time=datetime.now(timezone.utc))
            time.sleep(0.3)
            assert len(calls) == 1
        finally:
            release.set()
            service.shutdown(wait=True)

    def test_trigger_now_runs_synchronously(self):
        sync = Mock(return_value="result")
        service = SchedulerService(sync_callable=sync, interval_seconds=300)

        assert service.trigger_now() == "result"
        sync.assert_called_once_with()

    def test_get_next_run_time_without_job(self):
        scheduler = MagicMock()
        scheduler.get_job.return_value = None
        service = SchedulerService(sync_callable=Mock(), interval_seconds=300, scheduler=scheduler)

        assert service.get_next_run_time() is None

    def test_shutdown_when_not_running(self):
        scheduler = MagicMock()
        scheduler.running = False
        shutdown_event = threading.Event()
        service = SchedulerService(
            sync_callable=Mock(), interval_seconds=300, shutdown_event=shutdown_event, scheduler=scheduler
        )

        service.shutdown()

        scheduler.shutdown.assert_not_called()
        assert shutdown_event.is_set()

    def test_shutdown_without_event(self):
        scheduler = MagicMock()
        scheduler.running = True
        service = SchedulerService(sync_callable=Mock(), interval_seconds=300, scheduler=scheduler)

        service.shutdown(wait=True)

        scheduler.shutdown.assert_called_once_with(wait=True)


class TestJobEvents:
    """Scheduler events are logged, never raised."""

    def make_service(self):
        return SchedulerService(sync_callable=Mock(), interval_seconds=300, scheduler=MagicMock())

    def test_job_error_logged(self, caplog):
        service = self.make_service()
        event = Mock(code=EVENT_JOB_ERROR, job_id=JOB_ID, exception=RuntimeError("boom"))

        with caplog.at_level(logging.ERROR, logger="jobfeed.scheduler.service"):
            service._on_job_event(event)

        record = caplog.records[-1]
        assert record.event == "scheduler.job.failed"
        assert "boom" in record.getMessage()

    def test_overlap_logged(self, caplog):
        service = self.make_service()

        with caplog.at_level(logging.WARNING, logger="jobfeed.scheduler.service"):
            service._on_job_event(Mock(code=EVENT_JOB_MAX_INSTANCES, job_id=JOB_ID))

        assert caplog.records[-1].event == "scheduler.job.overlap"

    def test_missed_logged(self, caplog):
        service = self.make_service()

        with caplog.at_level(logging.WARNING, logger="jobfeed.scheduler.service"):
            service._on_job_event(Mock(code=EVENT_JOB_MISSED, job_id=JOB_ID))

        assert caplog.records[-1].event == "scheduler.job.missed"
