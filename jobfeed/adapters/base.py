"""Base adapter class with shared functionality for all board adapters.

Provides the abstract base class every platform adapter implements, along
with shared HTTP request handling, payload helpers and timestamp parsing.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from jobfeed.config.models import EmployerConfig
from jobfeed.domain.models import NormalizedPosting
from jobfeed.logging import get_logger
from jobfeed.utils.timestamps import from_score, parse_iso_datetime

from .exceptions import (
    SourceConfigurationError,
    SourceHTTPError,
    SourceResponseError,
    SourceTimeoutError,
)
from .rate_limit import RateLimiter

logger = get_logger(__name__, component="adapter")


class BaseAdapter(ABC):
    """Base class for all board adapters.

    Subclasses implement ``_fetch_payload`` and ``_to_posting``; ``fetch``
    ties them together and guarantees the snapshot contract:

    - an empty board yields ``[]``
    - any failure to obtain the full board raises SourceFetchError

    An entry that cannot be mapped fails the whole fetch with
    SourceResponseError; a snapshot missing it would remove a live listing.

    Attributes:
        timeout: HTTP request timeout in seconds
        user_agent: User-Agent header for HTTP requests
        rate_limiter: Shared pacing for requests to the same platform
    """

    ADAPTER_NAME = "base"

    def __init__(
        self,
        timeout: int = 30,
        user_agent: str = "jobfeed/1.0",
        rate_limiter: Optional[RateLimiter] = None,
        large_board_warning: int = 5000,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize adapter with configuration.

        Args:
            timeout: HTTP request timeout in seconds (range 5-300)
            user_agent: User-Agent header for requests
            rate_limiter: Shared RateLimiter (no pacing if None)
            large_board_warning: Posting count above which a warning is logged
            session: Pre-built requests session (tests inject mocks here)

        Raises:
            SourceConfigurationError: If timeout is outside valid range or user_agent is empty
        """
        if not 5 <= timeout <= 300:
            raise SourceConfigurationError(
                f"Timeout must be between 5 and 300 seconds, got: {timeout}"
            )
        if not user_agent or not user_agent.strip():
            raise SourceConfigurationError("user_agent cannot be empty")

        self.timeout = timeout
        self.user_agent = user_agent.strip()
        self.rate_limiter = rate_limiter
        self.large_board_warning = large_board_warning

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": self.user_agent, "Accept": "application/json"})

    def fetch(self, employer: EmployerConfig) -> List[NormalizedPosting]:
        """Fetch the employer's complete current snapshot.

        Args:
            employer: Employer configuration (identifier is the board token)

        Returns:
            Every posting on the board, possibly empty

        Raises:
            SourceFetchError: If the board could not be fetched in full
        """
        logger.info(
            f"Fetching postings from {self.ADAPTER_NAME}",
            extra={
                "event": "adapter.fetch.started",
                "adapter": self.ADAPTER_NAME,
                "employer_id": employer.identifier,
            },
        )

        try:
            entries = self._fetch_payload(employer)
        except (SourceHTTPError, SourceTimeoutError, SourceResponseError) as e:
            e.employer_id = employer.identifier
            raise

        postings = []
        for entry in entries:
            try:
                postings.append(self._to_posting(entry))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                entry_id = entry.get("id") if isinstance(entry, dict) else None
                logger.error(
                    f"Malformed {self.ADAPTER_NAME} posting, abandoning fetch",
                    extra={
                        "event": "adapter.posting.malformed",
                        "adapter": self.ADAPTER_NAME,
                        "employer_id": employer.identifier,
                        "posting_id": entry_id,
                        "error": str(e),
                    },
                )
                # dropping the entry would report a still-open listing as removed
                raise SourceResponseError(
                    f"Malformed {self.ADAPTER_NAME} posting {entry_id!r}: {e}",
                    employer_id=employer.identifier,
                ) from e

        if len(postings) > self.large_board_warning:
            logger.warning(
                f"Large board: {len(postings)} postings",
                extra={
                    "event": "adapter.fetch.large_board",
                    "employer_id": employer.identifier,
                    "count": len(postings),
                },
            )

        logger.info(
            f"Fetched {len(postings)} postings from {self.ADAPTER_NAME}",
            extra={
                "event": "adapter.fetch.succeeded",
                "adapter": self.ADAPTER_NAME,
                "employer_id": employer.identifier,
                "count": len(postings),
            },
        )
        return postings

    def close(self) -> None:
        """Release the pooled HTTP connections of the session."""
        self._session.close()

    @abstractmethod
    def _fetch_payload(self, employer: EmployerConfig) -> List[Dict[str, Any]]:
        """Return the raw posting objects of the board.

        Raises:
            SourceHTTPError, SourceTimeoutError, SourceResponseError
        """

    @abstractmethod
    def _to_posting(self, entry: Dict[str, Any]) -> NormalizedPosting:
        """Map one raw posting object to a NormalizedPosting."""

    def _make_request(
        self,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Make HTTP request with error handling.

        Handles:
        - Rate limiting per platform
        - Connection errors and timeouts
        - HTTP error status codes
        - Invalid JSON responses

        Returns:
            Parsed JSON response

        Raises:
            SourceHTTPError: On 4xx or 5xx HTTP status or connection failure
            SourceTimeoutError: On request timeout
            SourceResponseError: On invalid JSON
        """
        if self.rate_limiter is not None:
            waited = self.rate_limiter.acquire(self.ADAPTER_NAME)
            if waited > 0:
                logger.debug(
                    f"Rate limited {self.ADAPTER_NAME} request for {waited:.2f}s",
                    extra={"event": "adapter.fetch.throttled", "waited_seconds": round(waited, 3)},
                )

        try:
            logger.debug(
                f"HTTP {method} request to {url}",
                extra={
                    "event": "adapter.fetch.request",
                    "method": method,
                    "url": url,
                    "timeout": self.timeout,
                },
            )

            response = self._session.request(
                method=method,
                url=url,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={
                    "event": "adapter.fetch.retryable_error",
                    "error_type": "Timeout",
                    "url": url,
                },
            )
            raise SourceTimeoutError(
                f"Request to {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {url} failed: {e}",
                extra={
                    "event": "adapter.fetch.error",
                    "error_type": type(e).__name__,
                    "url": url,
                },
            )
            raise SourceHTTPError(f"Request to {url} failed: {e}", status_code=0, url=url) from e

        if response.status_code >= 400:
            is_retryable = response.status_code >= 500 or response.status_code == 429
            logger.log(
                logging.WARNING if is_retryable else logging.ERROR,
                f"HTTP {response.status_code} error from {url}",
                extra={
                    "event": "adapter.fetch.retryable_error" if is_retryable else "adapter.fetch.error",
                    "status_code": response.status_code,
                    "url": url,
                },
            )
            raise SourceHTTPError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
                url=url,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"Failed to parse JSON response from {url}",
                extra={"event": "adapter.fetch.error", "error_type": "JSONDecodeError", "url": url},
            )
            raise SourceResponseError(f"Failed to parse JSON response from {url}: {e}") from e

    @staticmethod
    def _require_list(payload: Any, field: Optional[str] = None) -> List[Dict[str, Any]]:
        """Extract a list of posting objects, or raise SourceResponseError."""
        if field is not None:
            if not isinstance(payload, dict):
                raise SourceResponseError(
                    f"Expected JSON object response, got {type(payload).__name__}"
                )
            payload = payload.get(field, [])
            if payload is None:
                payload = []
        if not isinstance(payload, list):
            label = f"'{field}' field" if field else "response"
            raise SourceResponseError(f"Expected {label} to be an array, got {type(payload).__name__}")
        return payload

    @staticmethod
    def _parse_timestamp(value: Any) -> Optional[datetime]:
        """Parse an ISO string or epoch-milliseconds value into UTC, or None."""
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return from_score(value / 1000.0)
        parsed = parse_iso_datetime(str(value))
        if parsed is None:
            logger.debug("Failed to parse timestamp", extra={"timestamp": str(value)})
        return parsed
