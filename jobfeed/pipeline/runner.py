"""Pipeline orchestration: fetch each employer's snapshot and reconcile it."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional
from uuid import uuid4

from jobfeed.adapters.exceptions import SourceFetchError
from jobfeed.adapters.factory import get_adapter
from jobfeed.adapters.rate_limit import RateLimiter
from jobfeed.config.models import AppConfig, EmployerConfig
from jobfeed.domain.models import ChangeEvent
from jobfeed.logging import get_logger
from jobfeed.logging.context import log_context
from jobfeed.normalization.exceptions import NormalizationError
from jobfeed.normalization.service import Normalizer
from jobfeed.normalization.tags import TagExtractor
from jobfeed.notifications.service import NotificationService
from jobfeed.persistence.database import IndexStore
from jobfeed.persistence.exceptions import PersistenceError
from jobfeed.reconciliation.engine import ReconciliationEngine
from jobfeed.reconciliation.exceptions import CycleTimeoutError
from jobfeed.reconciliation.models import ReconciliationResult
from jobfeed.utils.timestamps import utc_now

from .models import EmployerRunStats, PipelineRunResult

logger = get_logger(__name__, component="pipeline")


def build_engine(app_config: AppConfig, store: IndexStore) -> ReconciliationEngine:
    """Create a ReconciliationEngine with the configured rule tables and retention."""
    normalization = app_config.normalization
    return ReconciliationEngine(
        store,
        normalizer=Normalizer(location_rules=normalization.build_location_rules()),
        tag_extractor=TagExtractor(keywords=normalization.tag_keywords),
        removed_retention=app_config.reconciliation.removed_retention_delta,
    )


class SyncPipeline:
    """
    Runs one sync across all enabled employers.

    For each employer the adapter fetches the complete snapshot and the
    reconciliation engine diffs it against the store. A failed fetch, a
    cycle past its deadline or a store failure skips that employer only;
    its listings are left exactly as the previous cycle wrote them. A
    NormalizationError is a programming defect and aborts the run; any other
    unexpected error skips the employer with reason "unexpected_error".
    Events for listings applied before a timeout or store failure are still
    delivered.

    Change events from every employer are handed to the notifier once, at
    the end of the run.
    """

    def __init__(
        self,
        app_config: AppConfig,
        store: IndexStore,
        notification_service: Optional[NotificationService] = None,
        engine: Optional[ReconciliationEngine] = None,
        adapter_factory: Callable = get_adapter,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the sync pipeline.

        Args:
            app_config: Application configuration
            store: Open index store shared by every cycle
            notification_service: Digest notifier (no delivery if None)
            engine: Reconciliation engine (built from app_config if None)
            adapter_factory: ``(employer, advanced_config, rate_limiter) -> adapter``
            rate_limiter: Shared limiter (built from advanced.min_request_interval_ms if None)
            sleep: Used for the inter-employer delay
            monotonic: Clock for cycle deadlines
        """
        self.app_config = app_config
        self.store = store
        self.notification_service = notification_service
        self.engine = engine or build_engine(app_config, store)
        self.adapter_factory = adapter_factory
        self.rate_limiter = rate_limiter or RateLimiter(
            app_config.advanced.min_request_interval_ms / 1000.0
        )
        self._sleep = sleep
        self._monotonic = monotonic
        self._lock = threading.Lock()

    def run_once(self) -> PipelineRunResult:
        """
        Execute one sync of every enabled employer.

        Returns:
            PipelineRunResult with per-employer stats and the run's events

        Raises:
            NormalizationError: If a posting cannot be normalized; the run is aborted
        """
        run_started_at = utc_now()
        run_id = uuid4().hex[:12]

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Pipeline run skipped: previous run still in progress",
                    extra={"event": "pipeline.run.skipped", "reason": "lock_held"},
                )
            return PipelineRunResult(
                run_id=run_id,
                run_started_at=run_started_at,
                run_finished_at=utc_now(),
                skipped=True,
            )

        try:
            with log_context(run_id=run_id):
                employers = self.app_config.get_enabled_employers()
                workers = self.app_config.reconciliation.max_workers

                logger.info(
                    f"Pipeline run started for {len(employers)} employers",
                    extra={
                        "event": "pipeline.run.started",
                        "employer_count": len(employers),
                        "max_workers": workers,
                    },
                )

                if workers > 1 and len(employers) > 1:
                    outcomes = self._run_parallel(employers, run_id, workers)
                else:
                    outcomes = self._run_sequential(employers, run_id)

                result = PipelineRunResult(
                    run_id=run_id,
                    run_started_at=run_started_at,
                    run_finished_at=run_started_at,
                )
                for stats, events in outcomes:
                    result.employer_stats.append(stats)
                    result.events.extend(events)

                result.delivery_status = self._notify(result.events)
                result.run_finished_at = utc_now()

                logger.info(
                    "Pipeline run completed",
                    extra={
                        "event": "pipeline.run.completed",
                        "duration_ms": int(result.total_duration_seconds * 1000),
                        "total_fetched": result.total_fetched,
                        "total_created": result.total_created,
                        "total_removed": result.total_removed,
                        "total_failed": result.total_failed,
                        "skipped_employers": len(result.skipped_employers),
                        "delivery_status": result.delivery_status,
                    },
                )
                return result
        finally:
            self._lock.release()

    def _run_sequential(self, employers: List[EmployerConfig], run_id: str):
        delay = self.app_config.reconciliation.inter_employer_delay_ms / 1000.0
        outcomes = []
        for index, employer in enumerate(employers):
            if index > 0 and delay > 0:
                self._sleep(delay)
            outcomes.append(self._process_employer(employer, run_id))
        return outcomes

    def _run_parallel(self, employers: List[EmployerConfig], run_id: str, workers: int):
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="jobfeed-sync") as pool:
            futures = [pool.submit(self._process_employer, e, run_id) for e in employers]
            try:
                return [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    def _process_employer(self, employer: EmployerConfig, run_id: str):
        """
        Fetch and reconcile one employer.

        Returns:
            Tuple of (EmployerRunStats, list of ChangeEvent)
        """
        started = self._monotonic()
        stats = EmployerRunStats(employer_id=employer.identifier)
        events: List[ChangeEvent] = []

        # worker threads start with an empty context, so bind run_id again
        with log_context(
            run_id=run_id,
            employer_id=employer.identifier,
            employer_name=employer.name,
            board_type=employer.type,
        ):
            deadline = started + self.app_config.reconciliation.cycle_timeout_seconds
            adapter = None
            try:
                adapter = self.adapter_factory(
                    employer, self.app_config.advanced, self.rate_limiter
                )
                postings = adapter.fetch(employer)
                stats.fetched_count = len(postings)

                reconciliation = self.engine.reconcile(
                    employer.identifier,
                    postings,
                    employer_name=employer.name,
                    deadline=deadline,
                )
                self._record(stats, reconciliation)
                events.extend(reconciliation.events)

            except SourceFetchError as e:
                self._skip(stats, "fetch_failed", e)
            except CycleTimeoutError as e:
                self._salvage(stats, events, e.result)
                self._skip(stats, "timeout", e)
            except PersistenceError as e:
                # listings applied before the failure keep their events
                self._salvage(stats, events, e.result)
                self._skip(stats, "store_failed", e)
            except NormalizationError:
                raise
            except Exception as e:
                self._skip(stats, "unexpected_error", e, exc_info=True)
            finally:
                if adapter is not None:
                    adapter.close()
                stats.duration_seconds = self._monotonic() - started

            logger.debug(
                f"Employer cycle finished: {employer.name}",
                extra={
                    "event": "pipeline.employer.completed",
                    "duration_seconds": round(stats.duration_seconds, 3),
                    "skipped": stats.skipped,
                },
            )

        return stats, events

    @staticmethod
    def _record(stats: EmployerRunStats, reconciliation: ReconciliationResult) -> None:
        cycle = reconciliation.stats
        stats.created_count = cycle.created
        stats.updated_count = cycle.updated
        stats.unchanged_count = cycle.unchanged
        stats.reactivated_count = cycle.reactivated
        stats.removed_count = cycle.removed
        stats.purged_count = cycle.purged
        stats.failed_count = cycle.failed

    @staticmethod
    def _salvage(
        stats: EmployerRunStats, events: List[ChangeEvent], partial: Optional[ReconciliationResult]
    ) -> None:
        if partial is not None:
            SyncPipeline._record(stats, partial)
            events.extend(partial.events)

    @staticmethod
    def _skip(stats: EmployerRunStats, reason: str, error: Exception, exc_info: bool = False) -> None:
        stats.skipped = True
        stats.skip_reason = reason
        stats.error_message = str(error)
        logger.error(
            f"Skipping employer {stats.employer_id}: {error}",
            exc_info=exc_info,
            extra={
                "event": "pipeline.employer.skipped",
                "reason": reason,
                "error_type": type(error).__name__,
            },
        )

    def _notify(self, events: List[ChangeEvent]) -> Optional[str]:
        if self.notification_service is None:
            return None
        try:
            delivery = self.notification_service.deliver(events)
        except Exception as e:
            # a broken notifier must never fail the sync
            logger.error(
                f"Notifier failed: {e}",
                exc_info=True,
                extra={"event": "pipeline.notify.failed", "event_count": len(events)},
            )
            return "failed"
        return delivery.status
