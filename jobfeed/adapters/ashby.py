"""Ashby job board adapter."""

from typing import Any, Dict, List

from jobfeed.config.models import EmployerConfig
from jobfeed.domain.models import NormalizedPosting

from .base import BaseAdapter


class AshbyAdapter(BaseAdapter):
    """Adapter for Ashby job boards.

    API Details:
        Endpoint: https://api.ashbyhq.com/posting-api/job-board/{token}
        Method: GET
        Authentication: None (public posting API)
        Response: JSON object with a 'jobs' array

    ``publishedAt`` stands in for the update time; department falls back to
    the team name.
    """

    ADAPTER_NAME = "ashby"
    API_BASE_URL = "https://api.ashbyhq.com/posting-api/job-board"

    def _fetch_payload(self, employer: EmployerConfig) -> List[Dict[str, Any]]:
        url = f"{self.API_BASE_URL}/{employer.identifier}"
        response = self._make_request(url, params={"includeCompensation": "false"})
        return self._require_list(response, "jobs")

    def _to_posting(self, entry: Dict[str, Any]) -> NormalizedPosting:
        location = entry.get("location")
        if isinstance(location, dict):
            location = location.get("name")
        return NormalizedPosting(
            source_id=str(entry["id"]),
            title=entry["title"],
            url=entry.get("jobUrl") or "",
            updated_at=self._parse_timestamp(entry.get("publishedAt")),
            location_raw=location,
            department_raw=entry.get("department") or entry.get("team"),
        )
