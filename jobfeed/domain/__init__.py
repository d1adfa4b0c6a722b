"""Domain models for jobfeed."""

from .models import (
    ChangeEvent,
    ChangeEventType,
    EmployerStats,
    Listing,
    ListingStatus,
    NormalizedPosting,
    make_identity,
    split_identity,
)

__all__ = [
    "NormalizedPosting",
    "Listing",
    "ListingStatus",
    "ChangeEvent",
    "ChangeEventType",
    "EmployerStats",
    "make_identity",
    "split_identity",
]
