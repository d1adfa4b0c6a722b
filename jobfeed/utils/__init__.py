"""Utility functions for fingerprinting and time handling."""

from .hashing import FINGERPRINT_LENGTH, compute_content_fingerprint
from .timestamps import (
    ensure_utc,
    format_timestamp,
    from_score,
    parse_iso_datetime,
    to_score,
    utc_now,
)

__all__ = [
    # Hashing
    "compute_content_fingerprint",
    "FINGERPRINT_LENGTH",
    # Timestamps
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_timestamp",
    "to_score",
    "from_score",
]
