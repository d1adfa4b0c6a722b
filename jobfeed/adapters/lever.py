"""Lever job board adapter."""

from typing import Any, Dict, List

from jobfeed.config.models import EmployerConfig
from jobfeed.domain.models import NormalizedPosting

from .base import BaseAdapter


class LeverAdapter(BaseAdapter):
    """Adapter for Lever job boards.

    API Details:
        Endpoint: https://api.lever.co/v0/postings/{identifier}?mode=json
        Method: GET
        Authentication: None (public)
        Response: JSON array of posting objects (not wrapped in object)

    Lever has no update timestamp; ``createdAt`` (epoch milliseconds) is used.
    Department falls back to the team category.
    """

    ADAPTER_NAME = "lever"
    API_BASE_URL = "https://api.lever.co/v0/postings"

    def _fetch_payload(self, employer: EmployerConfig) -> List[Dict[str, Any]]:
        url = f"{self.API_BASE_URL}/{employer.identifier}"
        response = self._make_request(url, params={"mode": "json"})
        return self._require_list(response)

    def _to_posting(self, entry: Dict[str, Any]) -> NormalizedPosting:
        categories = entry.get("categories") or {}
        return NormalizedPosting(
            source_id=str(entry["id"]),
            title=entry["text"],
            url=entry.get("hostedUrl") or "",
            updated_at=self._parse_timestamp(entry.get("createdAt")),
            location_raw=categories.get("location"),
            department_raw=categories.get("department") or categories.get("team"),
        )
