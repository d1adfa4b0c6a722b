"""Scheduler service for periodic sync runs."""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from jobfeed.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "employer-sync"


class SchedulerService:
    """
    Wraps APScheduler to trigger the sync pipeline at a fixed interval.

    Runs never overlap (``max_instances=1``) and a backlog of missed runs
    collapses into one (``coalesce=True``). The main thread stays free to
    handle signals and coordinate shutdown.
    """

    def __init__(
        self,
        sync_callable: Callable[[], Any],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            sync_callable: Called on each scheduled run (e.g. pipeline.run_once)
            interval_seconds: Interval between runs in seconds
            shutdown_event: Set on shutdown so the main thread can stop waiting
            scheduler: Pre-built scheduler (tests inject a mock)
        """
        self.sync_callable = sync_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )
        self.scheduler.add_listener(
            self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES
        )

    def start(self) -> None:
        """Register the sync job and start the scheduler; the first run is immediate."""
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self.sync_callable,
            trigger=trigger,
            id=JOB_ID,
            name="Employer board sync",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler.

        Args:
            wait: If True, block until a run in progress finishes
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> Any:
        """Run the sync synchronously in the calling thread."""
        logger.info("Triggering immediate sync run", extra={"event": "scheduler.trigger_now"})
        return self.sync_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def _on_job_event(self, event) -> None:
        if event.code == EVENT_JOB_ERROR:
            logger.error(
                f"Scheduled sync raised: {event.exception}",
                extra={"event": "scheduler.job.failed", "job_id": event.job_id},
            )
        elif event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning(
                "Scheduled sync skipped: previous run still in progress",
                extra={"event": "scheduler.job.overlap", "job_id": event.job_id},
            )
        else:
            logger.warning(
                "Scheduled sync missed its run time",
                extra={"event": "scheduler.job.missed", "job_id": event.job_id},
            )
