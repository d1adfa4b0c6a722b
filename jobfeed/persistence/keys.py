"""Logical key layout of the index store.

Every record, set and sorted set lives under one of these keys. Index and
feed members are listing identities (``"{employer_id}:{source_listing_id}"``);
the employer roster holds bare employer ids.
"""

from jobfeed.domain.models import make_identity

LISTING_PREFIX = "listing"
NEW_FEED_KEY = "feed:new"
REMOVED_FEED_KEY = "feed:removed"
EMPLOYERS_KEY = "meta:employers"


def listing_key(employer_id: str, source_listing_id: str) -> str:
    return f"{LISTING_PREFIX}:{make_identity(employer_id, source_listing_id)}"


def listing_key_for(identity: str) -> str:
    return f"{LISTING_PREFIX}:{identity}"


def employer_index_key(employer_id: str) -> str:
    return f"idx:employer:{employer_id}"


def tag_index_key(tag: str) -> str:
    return f"idx:tag:{tag}"


def location_index_key(token: str) -> str:
    return f"idx:location:{token}"


def department_index_key(token: str) -> str:
    return f"idx:department:{token}"


def status_index_key(status: str) -> str:
    return f"idx:status:{status}"


def employer_feed_key(employer_id: str) -> str:
    return f"feed:employer:{employer_id}"


def stats_key(employer_id: str) -> str:
    return f"stats:employer:{employer_id}"
