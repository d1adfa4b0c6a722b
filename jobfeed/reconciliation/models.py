"""Data models for reconciliation cycle results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from jobfeed.domain.models import ChangeEvent, ChangeEventType, EmployerStats


class ListingOutcome(str, Enum):
    """What one cycle did to one incoming listing."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    REACTIVATED = "reactivated"


@dataclass
class CycleStats:
    """
    Counters for a single reconciliation cycle.

    Attributes:
        received: Postings in the incoming snapshot (after de-duplication)
        created: Listings seen for the first time
        updated: Active listings whose fingerprint changed
        unchanged: Listings whose fingerprint matched (last_seen_at refreshed)
        reactivated: Removed listings that reappeared
        removed: Active listings absent from the snapshot
        purged: Removed listings physically deleted after retention
        failed: Listings skipped because their writes failed
    """

    received: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    reactivated: int = 0
    removed: int = 0
    purged: int = 0
    failed: int = 0

    def record(self, outcome: ListingOutcome) -> None:
        if outcome == ListingOutcome.CREATED:
            self.created += 1
        elif outcome == ListingOutcome.UPDATED:
            self.updated += 1
        elif outcome == ListingOutcome.REACTIVATED:
            self.reactivated += 1
        else:
            self.unchanged += 1


@dataclass
class ReconciliationResult:
    """
    Outcome of one reconciliation cycle for one employer.

    Attributes:
        employer_id: Employer that was reconciled
        reconciled_at: The cycle's "now" (every timestamp written uses it)
        stats: Per-outcome counters
        events: Created/removed change events, in the order they happened
        employer_stats: Counters written to the store (None if that write failed)
        failed_identities: Identities whose writes failed this cycle
    """

    employer_id: str
    reconciled_at: datetime
    stats: CycleStats = field(default_factory=CycleStats)
    events: List[ChangeEvent] = field(default_factory=list)
    employer_stats: Optional[EmployerStats] = None
    failed_identities: List[str] = field(default_factory=list)

    @property
    def created_events(self) -> List[ChangeEvent]:
        return [e for e in self.events if e.event == ChangeEventType.CREATED]

    @property
    def removed_events(self) -> List[ChangeEvent]:
        return [e for e in self.events if e.event == ChangeEventType.REMOVED]

    @property
    def had_failures(self) -> bool:
        return self.stats.failed > 0
