"""Read-side queries over the index store.

Searches intersect index sets, order by first-seen (the global feed score)
and hydrate the surviving identities into Listing records. Indexes are only
consistent at cycle granularity, so a query running alongside a cycle may
see that cycle partially applied.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from jobfeed.domain.models import EmployerStats, Listing
from jobfeed.logging import get_logger
from jobfeed.normalization.service import Normalizer
from jobfeed.persistence import keys
from jobfeed.persistence.database import IndexStore, StoreBatch
from jobfeed.utils.timestamps import to_score

from .models import ListingPage, ListingQuery

logger = get_logger(__name__, component="query")


class ListingQueryService:
    """Filter, range and hydration queries for collaborators (API, CLI)."""

    def __init__(self, store: IndexStore, normalizer: Optional[Normalizer] = None):
        """Initialize ListingQueryService.

        Args:
            store: Open index store
            normalizer: Normalizer used on location/department filters; must
                match the one reconciliation uses
        """
        self.store = store
        self.normalizer = normalizer or Normalizer()

    def filter_keys(self, query: ListingQuery) -> List[str]:
        """Index set keys a query intersects."""
        set_keys = []
        if query.employer:
            set_keys.append(keys.employer_index_key(query.employer))
        for tag in query.tags:
            set_keys.append(keys.tag_index_key(tag))
        if query.location:
            set_keys.append(keys.location_index_key(self.normalizer.normalize_location(query.location)))
        if query.department:
            set_keys.append(
                keys.department_index_key(self.normalizer.normalize_department(query.department))
            )
        if query.status is not None:
            set_keys.append(keys.status_index_key(query.status.value))
        return set_keys

    def search(self, query: ListingQuery) -> ListingPage:
        """Run a filtered search.

        Returns:
            ListingPage ordered by first-seen descending
        """
        min_score = to_score(query.since) if query.since else None
        max_score = to_score(query.until) if query.until else None
        set_keys = self.filter_keys(query)

        with self.store.batch() as batch:
            if set_keys:
                candidates = batch.indexes.intersect(set_keys)
                scored = [
                    (identity, score)
                    for identity, score in batch.feeds.scores(keys.NEW_FEED_KEY, candidates).items()
                    if (min_score is None or score >= min_score)
                    and (max_score is None or score <= max_score)
                ]
                scored.sort(key=lambda pair: (pair[1], pair[0]), reverse=True)
            else:
                scored = batch.feeds.range_desc(keys.NEW_FEED_KEY, min_score, max_score)

            # identities whose record is gone are not matches, so total counts records
            matched = self._hydrate(batch, [identity for identity, _ in scored])
        items = matched[query.offset:query.offset + query.limit]

        logger.debug(
            f"Search matched {len(matched)} listings",
            extra={
                "event": "query.search.completed",
                "filter_count": len(set_keys),
                "total": len(matched),
                "returned": len(items),
            },
        )
        return ListingPage(items=items, total=len(matched), offset=query.offset, limit=query.limit)

    def recent(
        self, limit: int = 20, since: Optional[datetime] = None, employer: Optional[str] = None
    ) -> List[Listing]:
        """Newest listings by first-seen, globally or for one employer."""
        feed_key = keys.employer_feed_key(employer) if employer else keys.NEW_FEED_KEY
        return self._range(feed_key, limit, since)

    def recently_removed(self, limit: int = 20, since: Optional[datetime] = None) -> List[Listing]:
        """Listings most recently marked removed (until they expire)."""
        return self._range(keys.REMOVED_FEED_KEY, limit, since)

    def get_listing(self, employer_id: str, source_listing_id: str) -> Optional[Listing]:
        with self.store.batch() as batch:
            return batch.listings.get(employer_id, source_listing_id)

    def employer_stats(self, employer_id: str) -> Optional[EmployerStats]:
        with self.store.batch() as batch:
            return batch.stats.get(employer_id)

    def list_employers(self) -> List[str]:
        """Employers that have completed at least one cycle."""
        with self.store.batch() as batch:
            return sorted(batch.indexes.members(keys.EMPLOYERS_KEY))

    def _range(self, feed_key: str, limit: int, since: Optional[datetime]) -> List[Listing]:
        if limit <= 0:
            return []
        min_score = to_score(since) if since else None
        with self.store.batch() as batch:
            rows: Sequence[Tuple[str, float]] = batch.feeds.range_desc(
                feed_key, min_score=min_score, limit=limit
            )
            return self._hydrate(batch, [identity for identity, _ in rows])

    @staticmethod
    def _hydrate(batch: StoreBatch, identities: List[str]) -> List[Listing]:
        """Load records in the given order, dropping identities with no record."""
        found: Dict[str, Listing] = batch.listings.get_many(identities)
        missing = [identity for identity in identities if identity not in found]
        if missing:
            logger.debug(
                f"{len(missing)} indexed identities have no record",
                extra={"event": "query.hydrate.missing", "missing_count": len(missing)},
            )
        return [found[identity] for identity in identities if identity in found]
