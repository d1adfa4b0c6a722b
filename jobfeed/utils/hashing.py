"""Content fingerprinting for listings.

The fingerprint is a cheap "did anything meaningful change?" check. It covers
exactly the three descriptive fields a source can edit in place (title,
location, department) and nothing else; identity is always the
(employer_id, source_listing_id) pair, never the fingerprint.
"""

import hashlib

FINGERPRINT_LENGTH = 16


def compute_content_fingerprint(title: str, location_raw: str, department_raw: str) -> str:
    """Compute the content fingerprint for a posting.

    SHA-256 over ``"{title}|{location_raw}|{department_raw}"`` truncated to
    16 hex characters. The raw strings are hashed as-is: a change in casing
    or whitespace is a change the source made, so it counts.

    Args:
        title: Posting title
        location_raw: Location string as published by the source
        department_raw: Department string as published by the source

    Returns:
        16-character lowercase hex digest
    """
    payload = f"{title}|{location_raw}|{department_raw}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
