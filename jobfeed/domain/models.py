"""Core domain models for postings, listings, change events and stats.

- NormalizedPosting: what a source adapter hands to the reconciliation engine
- Listing: the canonical persisted record for one (employer, source id) pair
- ChangeEvent: created/removed notification produced by a reconciliation cycle
- EmployerStats: per-employer aggregate counters
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from jobfeed.utils.timestamps import ensure_utc

IDENTITY_SEPARATOR = ":"


def make_identity(employer_id: str, source_listing_id: str) -> str:
    """Render a listing identity as ``"{employer_id}:{source_listing_id}"``."""
    return f"{employer_id}{IDENTITY_SEPARATOR}{source_listing_id}"


def split_identity(identity: str) -> Tuple[str, str]:
    """Split an identity back into ``(employer_id, source_listing_id)``.

    Employer ids never contain the separator, so everything after the first
    one belongs to the source id.

    Raises:
        ValueError: If the identity has no separator
    """
    employer_id, sep, source_listing_id = identity.partition(IDENTITY_SEPARATOR)
    if not sep or not employer_id or not source_listing_id:
        raise ValueError(f"Malformed listing identity: {identity!r}")
    return employer_id, source_listing_id


class ListingStatus(str, Enum):
    """Lifecycle status of a listing."""

    ACTIVE = "active"
    REMOVED = "removed"


class ChangeEventType(str, Enum):
    """Kinds of change events delivered to the notifier."""

    CREATED = "created"
    REMOVED = "removed"


class NormalizedPosting(BaseModel):
    """One posting from a source snapshot, already mapped to the common schema.

    Blank locations and departments fall back to "Unknown" and "General" so
    every listing lands in exactly one location and one department index.
    """

    source_id: str = Field(..., description="Posting ID assigned by the source")
    title: str = Field(..., description="Posting title")
    url: str = Field("", description="Link to the posting")
    updated_at: Optional[datetime] = Field(None, description="Source's own update time (UTC)")
    location_raw: str = Field("Unknown", description="Location as published")
    department_raw: str = Field("General", description="Department as published")

    @field_validator("source_id", "title")
    @classmethod
    def require_text(cls, v: str) -> str:
        """Strip whitespace and reject blank values."""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("location_raw", mode="before")
    @classmethod
    def default_location(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return "Unknown"
        return str(v).strip()

    @field_validator("department_raw", mode="before")
    @classmethod
    def default_department(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return "General"
        return str(v).strip()

    @field_validator("url", mode="before")
    @classmethod
    def default_url(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @field_validator("updated_at")
    @classmethod
    def utc_updated_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    model_config = {"json_schema_extra": {"example": {
        "source_id": "4012345",
        "title": "Data Engineer",
        "url": "https://boards.greenhouse.io/acme/jobs/4012345",
        "updated_at": "2025-11-02T14:30:00Z",
        "location_raw": "New York, NY",
        "department_raw": "Engineering",
    }}}


class Listing(BaseModel):
    """Canonical record for one posting at one employer.

    Index memberships are derived from this record: the employer, the
    normalized location and department tokens, every tag, and the status.
    ``removed_at`` and ``expires_at`` are only set while status is removed.
    """

    employer_id: str = Field(..., description="Employer identifier (board token)")
    source_listing_id: str = Field(..., description="Posting ID assigned by the source")
    employer_name: str = Field("", description="Human-readable employer name")
    title: str
    url: str = ""
    location_raw: str
    department_raw: str
    location_normalized: str
    department_normalized: str
    tags: List[str] = Field(default_factory=list, description="Sorted tag tokens")
    status: ListingStatus = ListingStatus.ACTIVE
    content_fingerprint: str
    first_seen_at: datetime
    last_seen_at: datetime
    updated_at: datetime = Field(..., description="Source update time, or when we last changed it")
    removed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = Field(
        None, description="When a removed listing is physically deleted"
    )

    @field_validator("employer_id")
    @classmethod
    def validate_employer_id(cls, v: str) -> str:
        if not v or IDENTITY_SEPARATOR in v:
            raise ValueError(f"employer_id must be non-empty and must not contain '{IDENTITY_SEPARATOR}'")
        return v

    @field_validator("tags")
    @classmethod
    def sort_tags(cls, v: List[str]) -> List[str]:
        """Keep tags sorted and unique so the stored field is deterministic."""
        return sorted(set(v))

    @field_validator("first_seen_at", "last_seen_at", "updated_at", "removed_at", "expires_at")
    @classmethod
    def utc_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def identity(self) -> str:
        return make_identity(self.employer_id, self.source_listing_id)

    @property
    def is_active(self) -> bool:
        return self.status == ListingStatus.ACTIVE

    model_config = {"json_schema_extra": {"example": {
        "employer_id": "acme",
        "source_listing_id": "1",
        "employer_name": "Acme Capital",
        "title": "Senior Data Engineer",
        "url": "https://boards.greenhouse.io/acme/jobs/1",
        "location_raw": "New York, NY",
        "department_raw": "Engineering",
        "location_normalized": "new_york",
        "department_normalized": "engineering",
        "tags": ["engineering", "senior"],
        "status": "active",
        "content_fingerprint": "5d41402abc4b2a76",
        "first_seen_at": "2025-11-03T10:00:00Z",
        "last_seen_at": "2025-11-04T10:00:00Z",
        "updated_at": "2025-11-04T10:00:00Z",
        "removed_at": None,
        "expires_at": None,
    }}}


class ChangeEvent(BaseModel):
    """A created/removed event for the notifier, delivered at-least-once."""

    event: ChangeEventType
    employer: str
    employer_name: str = ""
    title: str
    url: str = ""
    location: str = ""
    department: str = ""
    tags: List[str] = Field(default_factory=list)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def utc_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class EmployerStats(BaseModel):
    """Aggregate counters written at the end of each reconciliation cycle."""

    employer_id: str
    active_count: int = Field(0, ge=0)
    total_seen: int = Field(0, ge=0, description="Size of the employer index")
    last_new: int = Field(0, ge=0)
    last_removed: int = Field(0, ge=0)
    last_reconciliation_at: Optional[datetime] = None

    @field_validator("last_reconciliation_at")
    @classmethod
    def utc_reconciled(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
