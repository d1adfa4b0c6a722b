"""Data models for pipeline execution tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from jobfeed.domain.models import ChangeEvent


@dataclass
class EmployerRunStats:
    """
    Statistics for a single employer's cycle within a pipeline run.

    Attributes:
        employer_id: Employer identifier (board token)
        fetched_count: Postings returned by the adapter
        created_count: Listings seen for the first time
        updated_count: Listings whose content changed
        unchanged_count: Listings seen again with the same content
        reactivated_count: Removed listings that reappeared
        removed_count: Listings marked removed this cycle
        purged_count: Expired listings physically deleted
        failed_count: Listings whose writes failed
        duration_seconds: Time spent on this employer
        skipped: Whether the cycle was skipped (fetch failure, timeout, store failure)
        skip_reason: Short machine-readable reason when skipped
        error_message: Error text when skipped
    """

    employer_id: str
    fetched_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    unchanged_count: int = 0
    reactivated_count: int = 0
    removed_count: int = 0
    purged_count: int = 0
    failed_count: int = 0
    duration_seconds: float = 0.0
    skipped: bool = False
    skip_reason: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def had_errors(self) -> bool:
        return self.skipped or self.failed_count > 0


@dataclass
class PipelineRunResult:
    """
    Aggregate results from a complete pipeline execution.

    Attributes:
        run_id: Identifier stamped on every log line of the run
        run_started_at: UTC timestamp when the run began
        run_finished_at: UTC timestamp when the run completed
        employer_stats: Per-employer execution statistics
        events: Change events from every employer, in completion order
        delivery_status: Notifier outcome ("sent", "partial", "failed",
            "skipped"), or None when no notifier is configured
        skipped: Whether the run was skipped (previous run still in progress)
    """

    run_id: str
    run_started_at: datetime
    run_finished_at: datetime
    employer_stats: List[EmployerRunStats] = field(default_factory=list)
    events: List[ChangeEvent] = field(default_factory=list)
    delivery_status: Optional[str] = None
    skipped: bool = False

    @property
    def total_duration_seconds(self) -> float:
        return (self.run_finished_at - self.run_started_at).total_seconds()

    @property
    def total_fetched(self) -> int:
        return sum(s.fetched_count for s in self.employer_stats)

    @property
    def total_created(self) -> int:
        return sum(s.created_count for s in self.employer_stats)

    @property
    def total_removed(self) -> int:
        return sum(s.removed_count for s in self.employer_stats)

    @property
    def total_failed(self) -> int:
        return sum(s.failed_count for s in self.employer_stats)

    @property
    def skipped_employers(self) -> List[str]:
        return [s.employer_id for s in self.employer_stats if s.skipped]

    @property
    def had_errors(self) -> bool:
        return any(s.had_errors for s in self.employer_stats)
