"""Database schema definition and ORM models.

The store models four primitives on top of SQL tables:

- listings: one canonical record per listing identity
- set_members: unordered sets of members (the index collections and roster)
- sorted_set_members: members scored by epoch seconds (the feeds)
- employer_stats: one counters record per employer

Timestamps are stored as ISO-8601 strings with a ``Z`` suffix, which sort
lexicographically in time order.
"""

import json
import logging
from typing import List

from sqlalchemy import Column, Float, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from jobfeed.domain.models import EmployerStats, Listing, ListingStatus
from jobfeed.utils.timestamps import format_timestamp, parse_iso_datetime

from .keys import listing_key

logger = logging.getLogger(__name__)

Base = declarative_base()


class ListingModel(Base):
    """ORM model for the listings table."""

    __tablename__ = "listings"

    key = Column(String(512), primary_key=True, nullable=False)

    employer_id = Column(String(255), nullable=False)
    source_listing_id = Column(String(255), nullable=False)
    employer_name = Column(String(255), nullable=False, default="")

    title = Column(Text, nullable=False)
    url = Column(Text, nullable=False, default="")
    location_raw = Column(String(255), nullable=False)
    department_raw = Column(String(255), nullable=False)
    location_normalized = Column(String(255), nullable=False)
    department_normalized = Column(String(255), nullable=False)
    # JSON array, already sorted
    tags = Column(Text, nullable=False, default="[]")

    status = Column(String(16), nullable=False)
    content_fingerprint = Column(String(64), nullable=False)

    first_seen_at = Column(String(50), nullable=False)
    last_seen_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)
    removed_at = Column(String(50), nullable=True)
    expires_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_listings_employer_status", "employer_id", "status"),
        Index("idx_listings_expires_at", "expires_at"),
    )

    def to_domain(self) -> Listing:
        """Convert ORM model to domain model."""
        return Listing(
            employer_id=self.employer_id,
            source_listing_id=self.source_listing_id,
            employer_name=self.employer_name or "",
            title=self.title,
            url=self.url or "",
            location_raw=self.location_raw,
            department_raw=self.department_raw,
            location_normalized=self.location_normalized,
            department_normalized=self.department_normalized,
            tags=_load_tags(self.tags),
            status=ListingStatus(self.status),
            content_fingerprint=self.content_fingerprint,
            first_seen_at=parse_iso_datetime(self.first_seen_at),
            last_seen_at=parse_iso_datetime(self.last_seen_at),
            updated_at=parse_iso_datetime(self.updated_at),
            removed_at=parse_iso_datetime(self.removed_at),
            expires_at=parse_iso_datetime(self.expires_at),
        )

    @classmethod
    def from_domain(cls, listing: Listing) -> "ListingModel":
        """Create ORM model from domain model."""
        model = cls(key=listing_key(listing.employer_id, listing.source_listing_id))
        model.apply(listing)
        return model

    def apply(self, listing: Listing) -> None:
        """Overwrite every column from ``listing`` (unconditional write)."""
        self.employer_id = listing.employer_id
        self.source_listing_id = listing.source_listing_id
        self.employer_name = listing.employer_name
        self.title = listing.title
        self.url = listing.url
        self.location_raw = listing.location_raw
        self.department_raw = listing.department_raw
        self.location_normalized = listing.location_normalized
        self.department_normalized = listing.department_normalized
        self.tags = json.dumps(sorted(set(listing.tags)))
        self.status = listing.status.value
        self.content_fingerprint = listing.content_fingerprint
        self.first_seen_at = format_timestamp(listing.first_seen_at)
        self.last_seen_at = format_timestamp(listing.last_seen_at)
        self.updated_at = format_timestamp(listing.updated_at)
        self.removed_at = format_timestamp(listing.removed_at)
        self.expires_at = format_timestamp(listing.expires_at)


class SetMemberModel(Base):
    """ORM model for set_members: one row per (set key, member)."""

    __tablename__ = "set_members"

    set_key = Column(String(512), primary_key=True, nullable=False)
    member = Column(String(512), primary_key=True, nullable=False)

    __table_args__ = (Index("idx_set_members_member", "member"),)


class SortedSetMemberModel(Base):
    """ORM model for sorted_set_members: one scored row per (key, member)."""

    __tablename__ = "sorted_set_members"

    set_key = Column(String(512), primary_key=True, nullable=False)
    member = Column(String(512), primary_key=True, nullable=False)
    score = Column(Float, nullable=False)

    __table_args__ = (
        Index("idx_sorted_set_key_score", "set_key", "score"),
        Index("idx_sorted_set_member", "member"),
    )


class EmployerStatsModel(Base):
    """ORM model for the employer_stats table."""

    __tablename__ = "employer_stats"

    employer_id = Column(String(255), primary_key=True, nullable=False)
    active_count = Column(Integer, nullable=False, default=0)
    total_seen = Column(Integer, nullable=False, default=0)
    last_new = Column(Integer, nullable=False, default=0)
    last_removed = Column(Integer, nullable=False, default=0)
    last_reconciliation_at = Column(String(50), nullable=True)

    def to_domain(self) -> EmployerStats:
        return EmployerStats(
            employer_id=self.employer_id,
            active_count=self.active_count,
            total_seen=self.total_seen,
            last_new=self.last_new,
            last_removed=self.last_removed,
            last_reconciliation_at=parse_iso_datetime(self.last_reconciliation_at),
        )

    def apply(self, stats: EmployerStats) -> None:
        self.active_count = stats.active_count
        self.total_seen = stats.total_seen
        self.last_new = stats.last_new
        self.last_removed = stats.last_removed
        self.last_reconciliation_at = format_timestamp(stats.last_reconciliation_at)


def _load_tags(raw: str) -> List[str]:
    if not raw:
        return []
    return list(json.loads(raw))


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating store schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        tables = inspect(engine).get_table_names()
        logger.info(f"Store schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create store schema: {e}", exc_info=True)
        raise
