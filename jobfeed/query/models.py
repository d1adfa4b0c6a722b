"""Query request and response models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from jobfeed.domain.models import Listing, ListingStatus
from jobfeed.utils.timestamps import ensure_utc

MAX_PAGE_SIZE = 500


class ListingQuery(BaseModel):
    """Filters for a listing search.

    Every dimension is optional; supplied dimensions are intersected. The
    recency window (``since``/``until``, both inclusive) applies to the
    listing's first-seen time.
    """

    employer: Optional[str] = Field(None, description="Employer identifier")
    tags: List[str] = Field(default_factory=list, description="Listings must carry every tag")
    location: Optional[str] = Field(None, description="Raw or canonical location")
    department: Optional[str] = Field(None, description="Raw or canonical department")
    status: Optional[ListingStatus] = Field(ListingStatus.ACTIVE, description="None matches any status")
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    offset: int = Field(0, ge=0)
    limit: int = Field(50, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: List[str]) -> List[str]:
        """Accept "Low Latency" as well as "low_latency"."""
        return sorted({t.strip().lower().replace(" ", "_") for t in v if t and t.strip()})

    @field_validator("since", "until")
    @classmethod
    def utc_bounds(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_window(self) -> "ListingQuery":
        if self.since and self.until and self.since > self.until:
            raise ValueError("since must not be after until")
        return self

    model_config = {"json_schema_extra": {"example": {
        "employer": "acme",
        "tags": ["quant", "senior"],
        "location": "New York, NY",
        "status": "active",
        "limit": 20,
    }}}


class ListingPage(BaseModel):
    """One page of search results, newest first."""

    items: List[Listing] = Field(default_factory=list)
    total: int = Field(0, ge=0, description="Matches with a stored record, before pagination")
    offset: int = 0
    limit: int = 50

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total
