"""UTC timestamp helpers.

Feeds are scored by epoch seconds and records store ISO-8601 strings; these
helpers are the only place either conversion happens.
"""

from datetime import datetime, timezone
from typing import Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` in UTC, treating naive datetimes as UTC already.

    Example:
        >>> ensure_utc(datetime(2025, 11, 4, 12, 0)).tzinfo == timezone.utc
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into a UTC datetime.

    Returns None for empty or unparseable input instead of raising; callers
    treat a missing source timestamp as "unknown".
    """
    if not value or not value.strip():
        return None

    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        pass

    try:
        return ensure_utc(datetime.strptime(value.strip(), "%Y-%m-%d"))
    except ValueError:
        return None


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage (microsecond precision, ``Z`` suffix)."""
    dt = ensure_utc(dt)
    if dt is None:
        return None
    return dt.strftime(ISO_FORMAT)


def to_score(dt: datetime) -> float:
    """Convert a datetime into a feed score (epoch seconds)."""
    return ensure_utc(dt).timestamp()


def from_score(score: float) -> datetime:
    """Convert a feed score back into a UTC datetime."""
    return datetime.fromtimestamp(score, tz=timezone.utc)
