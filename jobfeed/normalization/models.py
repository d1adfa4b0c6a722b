"""Data models for the normalization layer.

A PreparedPosting bundles an incoming posting with everything derived from
it (identity, normalized tokens, sorted tags, fingerprint) so the
reconciliation engine computes each value exactly once per cycle.
"""

from dataclasses import dataclass
from typing import Tuple

from jobfeed.domain.models import NormalizedPosting, make_identity
from jobfeed.utils.hashing import compute_content_fingerprint

from .service import Normalizer
from .tags import TagExtractor


@dataclass(frozen=True)
class PreparedPosting:
    """Incoming posting plus its derived index fields.

    Attributes:
        employer_id: Employer the snapshot belongs to
        posting: Posting as returned by the source adapter
        location_token: Normalized location token
        department_token: Normalized department token
        tags: Sorted, de-duplicated tag tokens
        fingerprint: Content fingerprint over title/location/department
    """

    employer_id: str
    posting: NormalizedPosting
    location_token: str
    department_token: str
    tags: Tuple[str, ...]
    fingerprint: str

    @property
    def identity(self) -> str:
        return make_identity(self.employer_id, self.posting.source_id)

    @classmethod
    def build(
        cls,
        employer_id: str,
        posting: NormalizedPosting,
        normalizer: Normalizer,
        tag_extractor: TagExtractor,
    ) -> "PreparedPosting":
        """Derive tokens, tags and fingerprint for one posting."""
        return cls(
            employer_id=employer_id,
            posting=posting,
            location_token=normalizer.normalize_location(posting.location_raw),
            department_token=normalizer.normalize_department(posting.department_raw),
            tags=tuple(sorted(tag_extractor.extract_tags(posting.title, posting.department_raw))),
            fingerprint=compute_content_fingerprint(
                posting.title, posting.location_raw, posting.department_raw
            ),
        )
