"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError. Every
SQLAlchemyError raised inside a repository or store batch is wrapped in one
of these, so callers never need to import SQLAlchemy to handle failures.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors.

    Transient from the engine's point of view: a listing whose writes raise
    this is skipped for the current cycle and converges on the next one.
    """

    # ReconciliationResult of a cycle cut short by this error, set by the engine
    result = None


class StoreConnectionError(PersistenceError):
    """Raised when the store cannot be opened or is used while closed.

    Examples:
    - Invalid store URL
    - Database file not accessible
    - Store handle used after close()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an operation requires a record that does not exist.

    Plain lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a constraint violation occurs.

    In practice this is two overlapping cycles inserting the same row; the
    losing listing converges on the next cycle.
    """

    pass
