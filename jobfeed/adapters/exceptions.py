"""Exceptions raised by job board adapters."""

from typing import Optional


class SourceFetchError(Exception):
    """Base exception for every failed board fetch.

    A fetch either returns the employer's complete snapshot (possibly empty)
    or raises one of these. The pipeline skips the employer's cycle on this
    error; reconciling against a partial snapshot would mark listings removed
    that are still open.
    """

    def __init__(self, message: str, employer_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.employer_id = employer_id


class SourceHTTPError(SourceFetchError):
    """HTTP request failed with a 4xx/5xx status or a connection error.

    ``status_code`` is 0 when no response was received.
    """

    def __init__(self, message: str, status_code: int, url: str, employer_id: Optional[str] = None) -> None:
        super().__init__(message, employer_id)
        self.status_code = status_code
        self.url = url

    @property
    def is_retryable(self) -> bool:
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


class SourceTimeoutError(SourceFetchError):
    """HTTP request did not complete within the configured timeout."""

    def __init__(self, message: str, url: str, employer_id: Optional[str] = None) -> None:
        super().__init__(message, employer_id)
        self.url = url


class SourceResponseError(SourceFetchError):
    """Response received but not parseable as the expected payload."""

    pass


class SourceConfigurationError(SourceFetchError):
    """Invalid adapter configuration (unknown platform, bad timeout, ...)."""

    pass
