"""Reconciliation engine: diff one employer's snapshot against stored state.

A cycle runs in four phases:
1. Apply every incoming posting (create / update / reactivate / unchanged)
2. Detect removals: active listings of the employer absent from the snapshot
3. Sweep removed listings whose retention window has expired
4. Write the employer's stats record

Each listing's writes (record plus every index and feed membership) run in
one store batch, so a listing is the unit of atomicity and retry. Every
mutation is a set-add, set-remove or unconditional field write, and removal
detection is recomputed from the snapshot each cycle, so re-running a cycle
converges on the same state.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from jobfeed.domain.models import (
    ChangeEvent,
    ChangeEventType,
    EmployerStats,
    Listing,
    ListingStatus,
    NormalizedPosting,
)
from jobfeed.logging import get_logger
from jobfeed.normalization.models import PreparedPosting
from jobfeed.normalization.service import Normalizer
from jobfeed.normalization.tags import TagExtractor
from jobfeed.persistence import keys
from jobfeed.persistence.database import IndexStore, StoreBatch
from jobfeed.persistence.exceptions import PersistenceError
from jobfeed.utils.timestamps import ensure_utc, to_score, utc_now

from .exceptions import CycleTimeoutError
from .models import CycleStats, ListingOutcome, ReconciliationResult

logger = get_logger(__name__, component="reconcile")

DEFAULT_REMOVED_RETENTION = timedelta(days=90)

ACTIVE_KEY = keys.status_index_key(ListingStatus.ACTIVE.value)
REMOVED_KEY = keys.status_index_key(ListingStatus.REMOVED.value)


class ReconciliationEngine:
    """Sole writer of listing records, indexes, feeds and employer stats.

    The store handle is injected and never opened or closed here.
    """

    def __init__(
        self,
        store: IndexStore,
        normalizer: Optional[Normalizer] = None,
        tag_extractor: Optional[TagExtractor] = None,
        removed_retention: timedelta = DEFAULT_REMOVED_RETENTION,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize ReconciliationEngine.

        Args:
            store: Open index store
            normalizer: Location/department normalizer (defaults to default rules)
            tag_extractor: Tag extractor (defaults to default tables)
            removed_retention: How long removed listings are kept before deletion
            clock: Source of "now" for cycles that don't pass one
            monotonic: Clock that deadlines are compared against
            logger_instance: Logger instance (defaults to module logger)
        """
        if removed_retention <= timedelta(0):
            raise ValueError("removed_retention must be positive")

        self.store = store
        self.normalizer = normalizer or Normalizer()
        self.tag_extractor = tag_extractor or TagExtractor()
        self.removed_retention = removed_retention
        self._clock = clock
        self._monotonic = monotonic
        self.logger = logger_instance or logger

    def reconcile(
        self,
        employer_id: str,
        postings: Iterable[NormalizedPosting],
        employer_name: str = "",
        now: Optional[datetime] = None,
        deadline: Optional[float] = None,
    ) -> ReconciliationResult:
        """Run one reconciliation cycle for one employer.

        ``postings`` must be the employer's complete snapshot. An empty list
        means the employer has no open postings and marks every active
        listing removed; callers must never pass an empty list for a failed
        fetch.

        Args:
            employer_id: Employer identifier (board token)
            postings: Complete current snapshot
            employer_name: Display name stored on records and events
            now: Cycle timestamp (defaults to the engine clock)
            deadline: Monotonic time after which the cycle is abandoned

        Returns:
            ReconciliationResult with counters and change events

        Raises:
            CycleTimeoutError: If the deadline passes before removal detection completes
            PersistenceError: If removal detection cannot read the store; carries ``result``
            NormalizationError: If a posting cannot be normalized (programming defect)
            StoreConnectionError: If the store is not open
        """
        now = ensure_utc(now or self._clock())
        result = ReconciliationResult(employer_id=employer_id, reconciled_at=now)
        prepared = self._prepare(employer_id, postings)
        result.stats.received = len(prepared)

        self.logger.info(
            f"Reconciling {len(prepared)} postings for {employer_id}",
            extra={
                "event": "reconcile.cycle.started",
                "employer_id": employer_id,
                "posting_count": len(prepared),
            },
        )

        try:
            self._apply_snapshot(result, prepared, employer_name, now, deadline)
        except CycleTimeoutError as e:
            e.result = result
            raise
        except PersistenceError as e:
            self.logger.error(
                f"Removal detection for {employer_id} failed: {e}",
                extra={"event": "reconcile.removals.failed", "employer_id": employer_id},
            )
            e.result = result
            raise
        result.stats.purged = self.purge_expired(employer_id, now=now)
        result.employer_stats = self._write_stats(result, now)

        self.logger.info(
            f"Reconciled {employer_id}: {result.stats.created} new, "
            f"{result.stats.updated} updated, {result.stats.removed} removed",
            extra={
                "event": "reconcile.cycle.completed",
                "employer_id": employer_id,
                "created": result.stats.created,
                "updated": result.stats.updated,
                "unchanged": result.stats.unchanged,
                "reactivated": result.stats.reactivated,
                "removed": result.stats.removed,
                "purged": result.stats.purged,
                "failed": result.stats.failed,
            },
        )
        return result

    def purge_expired(self, employer_id: str, now: Optional[datetime] = None) -> int:
        """Physically delete removed listings whose retention has run out.

        Deletes the record and every set and feed membership of the identity.

        Returns:
            Number of listings deleted
        """
        now = ensure_utc(now or self._clock())
        try:
            with self.store.batch() as batch:
                expired = batch.listings.list_expired(employer_id, now)
        except PersistenceError as e:
            self.logger.error(
                f"Could not list expired listings for {employer_id}: {e}",
                extra={"event": "reconcile.purge.failed", "employer_id": employer_id},
            )
            return 0

        purged = 0
        for listing in expired:
            identity = listing.identity
            try:
                with self.store.batch() as batch:
                    batch.listings.delete(identity)
                    batch.indexes.remove_everywhere(identity)
                    batch.feeds.remove_everywhere(identity)
            except PersistenceError as e:
                self.logger.warning(
                    f"Failed to purge {identity}: {e}",
                    extra={"event": "reconcile.purge.listing_failed", "identity": identity},
                )
                continue
            purged += 1
            self.logger.debug(
                f"Purged expired listing {identity}",
                extra={"event": "reconcile.listing.purged", "identity": identity},
            )
        return purged

    def _apply_snapshot(
        self,
        result: ReconciliationResult,
        prepared: List[PreparedPosting],
        employer_name: str,
        now: datetime,
        deadline: Optional[float],
    ) -> None:
        employer_id = result.employer_id
        seen: Set[str] = set()
        for index, item in enumerate(prepared):
            self._check_deadline(deadline, employer_id, index, len(prepared), "apply")
            # a failed write still counts as seen so it can never trigger a removal
            seen.add(item.identity)
            try:
                with self.store.batch() as batch:
                    outcome = self._apply(batch, item, employer_name, now)
            except PersistenceError as e:
                self._record_failure(result, item.identity, e)
                continue

            result.stats.record(outcome)
            if outcome == ListingOutcome.CREATED:
                result.events.append(
                    self._event(ChangeEventType.CREATED, employer_id, employer_name, item, now)
                )

        self._detect_removals(result, employer_name, seen, now, deadline)

    def _prepare(self, employer_id: str, postings: Iterable[NormalizedPosting]) -> List[PreparedPosting]:
        by_identity: Dict[str, PreparedPosting] = {}
        for posting in postings:
            item = PreparedPosting.build(employer_id, posting, self.normalizer, self.tag_extractor)
            if item.identity in by_identity:
                self.logger.warning(
                    f"Duplicate posting {item.identity} in snapshot; keeping the last one",
                    extra={"event": "reconcile.snapshot.duplicate", "identity": item.identity},
                )
            by_identity[item.identity] = item
        return list(by_identity.values())

    def _apply(
        self, batch: StoreBatch, item: PreparedPosting, employer_name: str, now: datetime
    ) -> ListingOutcome:
        posting = item.posting
        existing = batch.listings.get(item.employer_id, posting.source_id)

        if existing is None:
            self._create(batch, item, employer_name, now)
            return ListingOutcome.CREATED

        if existing.status == ListingStatus.REMOVED:
            self._update(batch, existing, item, employer_name, now)
            batch.indexes.remove(REMOVED_KEY, item.identity)
            batch.feeds.remove(keys.REMOVED_FEED_KEY, item.identity)
            self.logger.info(
                f"Reactivated listing {item.identity}",
                extra={"event": "reconcile.listing.reactivated", "identity": item.identity},
            )
            return ListingOutcome.REACTIVATED

        if existing.content_fingerprint != item.fingerprint:
            self._update(batch, existing, item, employer_name, now)
            self.logger.debug(
                f"Updated listing {item.identity}",
                extra={"event": "reconcile.listing.updated", "identity": item.identity},
            )
            return ListingOutcome.UPDATED

        batch.listings.touch(item.identity, now)
        return ListingOutcome.UNCHANGED

    def _create(self, batch: StoreBatch, item: PreparedPosting, employer_name: str, now: datetime) -> None:
        posting = item.posting
        identity = item.identity
        listing = Listing(
            employer_id=item.employer_id,
            source_listing_id=posting.source_id,
            employer_name=employer_name,
            title=posting.title,
            url=posting.url,
            location_raw=posting.location_raw,
            department_raw=posting.department_raw,
            location_normalized=item.location_token,
            department_normalized=item.department_token,
            tags=list(item.tags),
            status=ListingStatus.ACTIVE,
            content_fingerprint=item.fingerprint,
            first_seen_at=now,
            last_seen_at=now,
            updated_at=posting.updated_at or now,
        )
        batch.listings.save(listing)

        batch.indexes.add(keys.employer_index_key(item.employer_id), identity)
        batch.indexes.add(keys.location_index_key(item.location_token), identity)
        batch.indexes.add(keys.department_index_key(item.department_token), identity)
        for tag in item.tags:
            batch.indexes.add(keys.tag_index_key(tag), identity)
        batch.indexes.add(ACTIVE_KEY, identity)

        score = to_score(now)
        batch.feeds.add(keys.NEW_FEED_KEY, identity, score)
        batch.feeds.add(keys.employer_feed_key(item.employer_id), identity, score)

        self.logger.info(
            f"New listing {identity}: {posting.title}",
            extra={"event": "reconcile.listing.created", "identity": identity},
        )

    def _update(
        self,
        batch: StoreBatch,
        existing: Listing,
        item: PreparedPosting,
        employer_name: str,
        now: datetime,
    ) -> None:
        """Rewrite fields and move index memberships; feeds are left alone."""
        posting = item.posting
        identity = item.identity
        updated = existing.model_copy(
            update={
                "employer_name": employer_name or existing.employer_name,
                "title": posting.title,
                "url": posting.url,
                "location_raw": posting.location_raw,
                "department_raw": posting.department_raw,
                "location_normalized": item.location_token,
                "department_normalized": item.department_token,
                "tags": list(item.tags),
                "status": ListingStatus.ACTIVE,
                "content_fingerprint": item.fingerprint,
                "last_seen_at": now,
                "updated_at": posting.updated_at or now,
                "removed_at": None,
                "expires_at": None,
            }
        )
        batch.listings.save(updated)

        if existing.location_normalized != item.location_token:
            batch.indexes.remove(keys.location_index_key(existing.location_normalized), identity)
        if existing.department_normalized != item.department_token:
            batch.indexes.remove(keys.department_index_key(existing.department_normalized), identity)
        for tag in set(existing.tags) - set(item.tags):
            batch.indexes.remove(keys.tag_index_key(tag), identity)

        batch.indexes.add(keys.employer_index_key(item.employer_id), identity)
        batch.indexes.add(keys.location_index_key(item.location_token), identity)
        batch.indexes.add(keys.department_index_key(item.department_token), identity)
        for tag in item.tags:
            batch.indexes.add(keys.tag_index_key(tag), identity)
        batch.indexes.add(ACTIVE_KEY, identity)

    def _detect_removals(
        self,
        result: ReconciliationResult,
        employer_name: str,
        seen: Set[str],
        now: datetime,
        deadline: Optional[float],
    ) -> None:
        employer_id = result.employer_id
        with self.store.batch() as batch:
            active = batch.indexes.intersect([keys.employer_index_key(employer_id), ACTIVE_KEY])
        missing = sorted(active - seen)

        for index, identity in enumerate(missing):
            self._check_deadline(deadline, employer_id, index, len(missing), "removal")
            try:
                with self.store.batch() as batch:
                    event = self._mark_removed(batch, identity, employer_name, now)
            except PersistenceError as e:
                self._record_failure(result, identity, e)
                continue

            if event is not None:
                result.stats.removed += 1
                result.events.append(event)

    def _mark_removed(
        self, batch: StoreBatch, identity: str, employer_name: str, now: datetime
    ) -> Optional[ChangeEvent]:
        listing = batch.listings.get_by_identity(identity)
        if listing is None or listing.status != ListingStatus.ACTIVE:
            # index says active but the record disagrees; the record wins
            batch.indexes.remove(ACTIVE_KEY, identity)
            self.logger.warning(
                f"Dropped stale active membership for {identity}",
                extra={"event": "reconcile.index.repaired", "identity": identity},
            )
            return None

        removed = listing.model_copy(
            update={
                "status": ListingStatus.REMOVED,
                "removed_at": now,
                "expires_at": now + self.removed_retention,
            }
        )
        batch.listings.save(removed)
        batch.indexes.move(ACTIVE_KEY, REMOVED_KEY, identity)
        batch.feeds.add(keys.REMOVED_FEED_KEY, identity, to_score(now))

        self.logger.info(
            f"Listing removed {identity}: {listing.title}",
            extra={"event": "reconcile.listing.removed", "identity": identity},
        )
        return ChangeEvent(
            event=ChangeEventType.REMOVED,
            employer=listing.employer_id,
            employer_name=employer_name or listing.employer_name,
            title=listing.title,
            url=listing.url,
            location=listing.location_raw,
            department=listing.department_raw,
            tags=list(listing.tags),
            timestamp=now,
        )

    def _write_stats(self, result: ReconciliationResult, now: datetime) -> Optional[EmployerStats]:
        employer_id = result.employer_id
        try:
            with self.store.batch() as batch:
                employer_key = keys.employer_index_key(employer_id)
                stats = EmployerStats(
                    employer_id=employer_id,
                    active_count=batch.indexes.intersect_count([employer_key, ACTIVE_KEY]),
                    total_seen=batch.indexes.count(employer_key),
                    last_new=result.stats.created,
                    last_removed=result.stats.removed,
                    last_reconciliation_at=now,
                )
                batch.stats.save(stats)
                batch.indexes.add(keys.EMPLOYERS_KEY, employer_id)
            return stats
        except PersistenceError as e:
            self.logger.error(
                f"Failed to write stats for {employer_id}: {e}",
                extra={"event": "reconcile.stats.failed", "employer_id": employer_id},
            )
            return None

    def _check_deadline(
        self, deadline: Optional[float], employer_id: str, processed: int, total: int, phase: str
    ) -> None:
        if deadline is not None and self._monotonic() >= deadline:
            self.logger.warning(
                f"Reconciliation for {employer_id} abandoned: deadline exceeded",
                extra={
                    "event": "reconcile.cycle.timeout",
                    "employer_id": employer_id,
                    "phase": phase,
                    "processed": processed,
                    "total": total,
                },
            )
            raise CycleTimeoutError(employer_id, processed, total, phase)

    def _record_failure(self, result: ReconciliationResult, identity: str, error: Exception) -> None:
        result.stats.failed += 1
        result.failed_identities.append(identity)
        self.logger.error(
            f"Failed to persist {identity}, skipping: {error}",
            extra={
                "event": "reconcile.listing.failed",
                "identity": identity,
                "error_type": type(error).__name__,
            },
        )

    @staticmethod
    def _event(
        kind: ChangeEventType, employer_id: str, employer_name: str, item: PreparedPosting, now: datetime
    ) -> ChangeEvent:
        return ChangeEvent(
            event=kind,
            employer=employer_id,
            employer_name=employer_name,
            title=item.posting.title,
            url=item.posting.url,
            location=item.posting.location_raw,
            department=item.posting.department_raw,
            tags=list(item.tags),
            timestamp=now,
        )
