"""Data access layer (repositories) for the index store.

Each repository wraps one storage primitive and works inside the session of
a single store batch:

- ListingRepository: canonical listing records
- IndexRepository: set membership (index collections and the employer roster)
- FeedRepository: scored members (recency feeds)
- StatsRepository: per-employer counters

Every write is idempotent: adding a present member, removing an absent one
or re-saving an identical record leaves the store unchanged. Repositories
return domain models, never ORM rows.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from jobfeed.domain.models import EmployerStats, Listing, ListingStatus
from jobfeed.utils.timestamps import format_timestamp

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .keys import listing_key, listing_key_for
from .schema import EmployerStatsModel, ListingModel, SetMemberModel, SortedSetMemberModel

logger = logging.getLogger(__name__)


class ListingRepository:
    """Repository for canonical listing records."""

    def __init__(self, session: Session):
        """Initialize repository with a store session.

        Args:
            session: SQLAlchemy session of the enclosing store batch
        """
        self.session = session

    def get(self, employer_id: str, source_listing_id: str) -> Optional[Listing]:
        """Retrieve a listing by its identity parts.

        Returns:
            Listing if found, None otherwise

        Raises:
            PersistenceError: If a database error occurs
        """
        return self._get_by_key(listing_key(employer_id, source_listing_id))

    def get_by_identity(self, identity: str) -> Optional[Listing]:
        """Retrieve a listing by its ``"{employer}:{id}"`` identity."""
        return self._get_by_key(listing_key_for(identity))

    def _get_by_key(self, key: str) -> Optional[Listing]:
        try:
            model = self.session.get(ListingModel, key)
            return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving listing {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve listing: {e}") from e

    def get_many(self, identities: Iterable[str]) -> Dict[str, Listing]:
        """Hydrate several identities at once.

        Identities without a record are simply absent from the result.

        Raises:
            PersistenceError: If a database error occurs
        """
        keys = [listing_key_for(identity) for identity in identities]
        if not keys:
            return {}

        try:
            stmt = select(ListingModel).where(ListingModel.key.in_(keys))
            listings = [model.to_domain() for model in self.session.execute(stmt).scalars()]
            return {listing.identity: listing for listing in listings}

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {len(keys)} listings: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve listings: {e}") from e

    def save(self, listing: Listing) -> Listing:
        """Write the full record, inserting or overwriting.

        Raises:
            DataIntegrityError: If a concurrent insert won the race
            PersistenceError: If a database error occurs
        """
        key = listing_key(listing.employer_id, listing.source_listing_id)
        try:
            existing = self.session.get(ListingModel, key)
            if existing is not None:
                existing.apply(listing)
            else:
                self.session.add(ListingModel.from_domain(listing))
            self.session.flush()
            return listing

        except IntegrityError as e:
            logger.error(f"Integrity error saving listing {key}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to save listing due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving listing {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save listing: {e}") from e

    def touch(self, identity: str, last_seen_at: datetime) -> None:
        """Update only last_seen_at.

        Raises:
            RecordNotFoundError: If the listing doesn't exist
            PersistenceError: If a database error occurs
        """
        key = listing_key_for(identity)
        try:
            stmt = (
                update(ListingModel)
                .where(ListingModel.key == key)
                .values(last_seen_at=format_timestamp(last_seen_at))
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Listing {identity} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error touching listing {identity}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update last_seen_at: {e}") from e

    def delete(self, identity: str) -> bool:
        """Delete a record. Returns True if a row was removed."""
        key = listing_key_for(identity)
        try:
            result = self.session.execute(delete(ListingModel).where(ListingModel.key == key))
            self.session.flush()
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Error deleting listing {identity}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete listing: {e}") from e

    def list_expired(self, employer_id: str, now: datetime) -> List[Listing]:
        """Removed listings of one employer whose expires_at is at or before now."""
        try:
            stmt = (
                select(ListingModel)
                .where(
                    ListingModel.employer_id == employer_id,
                    ListingModel.status == ListingStatus.REMOVED.value,
                    ListingModel.expires_at.is_not(None),
                    ListingModel.expires_at <= format_timestamp(now),
                )
                .order_by(ListingModel.expires_at)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing expired listings for {employer_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list expired listings: {e}") from e


class IndexRepository:
    """Set membership operations over the set_members table."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, set_key: str, member: str) -> bool:
        """Add a member. Returns True if it was not already present."""
        try:
            if self.session.get(SetMemberModel, (set_key, member)) is not None:
                return False
            self.session.add(SetMemberModel(set_key=set_key, member=member))
            self.session.flush()
            return True

        except IntegrityError as e:
            raise DataIntegrityError(f"Concurrent insert into {set_key}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding {member} to {set_key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add set member: {e}") from e

    def remove(self, set_key: str, member: str) -> bool:
        """Remove a member. Returns True if it was present."""
        try:
            stmt = delete(SetMemberModel).where(
                SetMemberModel.set_key == set_key,
                SetMemberModel.member == member,
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Error removing {member} from {set_key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to remove set member: {e}") from e

    def move(self, source_key: str, destination_key: str, member: str) -> None:
        """Remove from one set and add to another in the same batch."""
        self.remove(source_key, member)
        self.add(destination_key, member)

    def members(self, set_key: str) -> Set[str]:
        try:
            stmt = select(SetMemberModel.member).where(SetMemberModel.set_key == set_key)
            return set(self.session.execute(stmt).scalars())

        except SQLAlchemyError as e:
            logger.error(f"Error reading members of {set_key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read set members: {e}") from e

    def is_member(self, set_key: str, member: str) -> bool:
        try:
            return self.session.get(SetMemberModel, (set_key, member)) is not None

        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to check set membership: {e}") from e

    def count(self, set_key: str) -> int:
        try:
            stmt = select(func.count()).select_from(SetMemberModel).where(
                SetMemberModel.set_key == set_key
            )
            return int(self.session.execute(stmt).scalar_one())

        except SQLAlchemyError as e:
            logger.error(f"Error counting members of {set_key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count set members: {e}") from e

    def intersect(self, set_keys: Sequence[str]) -> Set[str]:
        """Members present in every one of ``set_keys``.

        An empty key list yields an empty set.
        """
        keys = sorted(set(set_keys))
        if not keys:
            return set()

        try:
            stmt = (
                select(SetMemberModel.member)
                .where(SetMemberModel.set_key.in_(keys))
                .group_by(SetMemberModel.member)
                .having(func.count(SetMemberModel.set_key) == len(keys))
            )
            return set(self.session.execute(stmt).scalars())

        except SQLAlchemyError as e:
            logger.error(f"Error intersecting {keys}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to intersect sets: {e}") from e

    def intersect_count(self, set_keys: Sequence[str]) -> int:
        return len(self.intersect(set_keys))

    def keys_for_member(self, member: str) -> Set[str]:
        """Every set key the member currently belongs to."""
        try:
            stmt = select(SetMemberModel.set_key).where(SetMemberModel.member == member)
            return set(self.session.execute(stmt).scalars())

        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read memberships: {e}") from e

    def remove_everywhere(self, member: str) -> int:
        """Drop the member from every set. Returns the number of memberships removed."""
        try:
            result = self.session.execute(
                delete(SetMemberModel).where(SetMemberModel.member == member)
            )
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error purging memberships of {member}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge set memberships: {e}") from e


class FeedRepository:
    """Sorted-set operations over the sorted_set_members table."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, feed_key: str, member: str, score: float) -> bool:
        """Insert or re-score a member. Returns True if it was newly inserted."""
        try:
            existing = self.session.get(SortedSetMemberModel, (feed_key, member))
            if existing is not None:
                existing.score = score
                self.session.flush()
                return False
            self.session.add(SortedSetMemberModel(set_key=feed_key, member=member, score=score))
            self.session.flush()
            return True

        except IntegrityError as e:
            raise DataIntegrityError(f"Concurrent insert into {feed_key}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding {member} to {feed_key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add feed member: {e}") from e

    def remove(self, feed_key: str, member: str) -> bool:
        try:
            stmt = delete(SortedSetMemberModel).where(
                SortedSetMemberModel.set_key == feed_key,
                SortedSetMemberModel.member == member,
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Error removing {member} from {feed_key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to remove feed member: {e}") from e

    def score(self, feed_key: str, member: str) -> Optional[float]:
        try:
            row = self.session.get(SortedSetMemberModel, (feed_key, member))
            return row.score if row is not None else None

        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read feed score: {e}") from e

    def count(self, feed_key: str) -> int:
        try:
            stmt = select(func.count()).select_from(SortedSetMemberModel).where(
                SortedSetMemberModel.set_key == feed_key
            )
            return int(self.session.execute(stmt).scalar_one())

        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to count feed members: {e}") from e

    def range_desc(
        self,
        feed_key: str,
        min_score: Optional[float] = None,
        max_score: Optional[float] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, float]]:
        """Members ordered by score, newest first, within an inclusive score window.

        Ties are broken by member so paging is stable.
        """
        try:
            stmt = select(SortedSetMemberModel.member, SortedSetMemberModel.score).where(
                SortedSetMemberModel.set_key == feed_key
            )
            if min_score is not None:
                stmt = stmt.where(SortedSetMemberModel.score >= min_score)
            if max_score is not None:
                stmt = stmt.where(SortedSetMemberModel.score <= max_score)
            stmt = stmt.order_by(
                SortedSetMemberModel.score.desc(), SortedSetMemberModel.member.desc()
            ).offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)

            return [(member, score) for member, score in self.session.execute(stmt).all()]

        except SQLAlchemyError as e:
            logger.error(f"Error reading range of {feed_key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read feed range: {e}") from e

    def scores(self, feed_key: str, members: Iterable[str]) -> Dict[str, float]:
        """Scores for a subset of members; members not in the feed are omitted."""
        wanted = list(set(members))
        if not wanted:
            return {}
        try:
            stmt = select(SortedSetMemberModel.member, SortedSetMemberModel.score).where(
                SortedSetMemberModel.set_key == feed_key,
                SortedSetMemberModel.member.in_(wanted),
            )
            return {member: score for member, score in self.session.execute(stmt).all()}

        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read feed scores: {e}") from e

    def remove_everywhere(self, member: str) -> int:
        """Drop the member from every feed."""
        try:
            result = self.session.execute(
                delete(SortedSetMemberModel).where(SortedSetMemberModel.member == member)
            )
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error purging feed entries of {member}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge feed entries: {e}") from e


class StatsRepository:
    """Repository for per-employer counters."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, employer_id: str) -> Optional[EmployerStats]:
        try:
            model = self.session.get(EmployerStatsModel, employer_id)
            return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving stats for {employer_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve employer stats: {e}") from e

    def save(self, stats: EmployerStats) -> EmployerStats:
        """Overwrite the employer's counters."""
        try:
            model = self.session.get(EmployerStatsModel, stats.employer_id)
            if model is None:
                model = EmployerStatsModel(employer_id=stats.employer_id)
                self.session.add(model)
            model.apply(stats)
            self.session.flush()
            return stats

        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to save employer stats: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving stats for {stats.employer_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save employer stats: {e}") from e
