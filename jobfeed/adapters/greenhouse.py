"""Greenhouse job board adapter."""

from typing import Any, Dict, List

from jobfeed.config.models import EmployerConfig
from jobfeed.domain.models import NormalizedPosting

from .base import BaseAdapter


class GreenhouseAdapter(BaseAdapter):
    """Adapter for Greenhouse job boards.

    API Details:
        Endpoint: https://boards-api.greenhouse.io/v1/boards/{token}/jobs?content=true
        Method: GET
        Authentication: None (public)
        Response: JSON object with a 'jobs' array

    A board token that does not exist answers 404, which is a fetch failure,
    never an empty board.
    """

    ADAPTER_NAME = "greenhouse"
    API_BASE_URL = "https://boards-api.greenhouse.io/v1/boards"

    def _fetch_payload(self, employer: EmployerConfig) -> List[Dict[str, Any]]:
        url = f"{self.API_BASE_URL}/{employer.identifier}/jobs"
        response = self._make_request(url, params={"content": "true"})
        return self._require_list(response, "jobs")

    def _to_posting(self, entry: Dict[str, Any]) -> NormalizedPosting:
        location = (entry.get("location") or {}).get("name")
        departments = entry.get("departments") or []
        department = departments[0].get("name") if departments else None

        return NormalizedPosting(
            source_id=str(entry["id"]),
            title=entry["title"],
            url=entry.get("absolute_url") or "",
            updated_at=self._parse_timestamp(entry.get("updated_at")),
            location_raw=location,
            department_raw=department,
        )
