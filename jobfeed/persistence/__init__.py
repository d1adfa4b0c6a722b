"""Persistence layer: the index store.

Public API:
    - IndexStore: explicitly opened/closed store handle; ``batch()`` scopes a transaction
    - StoreBatch: repositories bound to one batch
    - ListingRepository, IndexRepository, FeedRepository, StatsRepository
    - keys: logical key layout (``listing:...``, ``idx:...``, ``feed:...``)

Exceptions:
    - PersistenceError: Base exception for all persistence errors
    - StoreConnectionError: Store open/usage failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from jobfeed.persistence import IndexStore
    >>> with IndexStore("sqlite://") as store:
    ...     with store.batch() as batch:
    ...         listing = batch.listings.get("acme", "1")
"""

from . import keys
from .database import IndexStore, StoreBatch
from .exceptions import (
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
    StoreConnectionError,
)
from .repositories import FeedRepository, IndexRepository, ListingRepository, StatsRepository

__all__ = [
    "IndexStore",
    "StoreBatch",
    "keys",
    "ListingRepository",
    "IndexRepository",
    "FeedRepository",
    "StatsRepository",
    "PersistenceError",
    "StoreConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
