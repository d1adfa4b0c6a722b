"""Reconciliation engine and cycle result models."""

from .engine import DEFAULT_REMOVED_RETENTION, ReconciliationEngine
from .exceptions import CycleTimeoutError
from .models import CycleStats, ListingOutcome, ReconciliationResult

__all__ = [
    "ReconciliationEngine",
    "ReconciliationResult",
    "CycleStats",
    "ListingOutcome",
    "CycleTimeoutError",
    "DEFAULT_REMOVED_RETENTION",
]
