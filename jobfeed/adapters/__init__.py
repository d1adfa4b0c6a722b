"""Job board adapters.

Each adapter fetches one employer's complete snapshot and maps it to
NormalizedPosting objects:
- Greenhouse: greenhouse.GreenhouseAdapter
- Lever: lever.LeverAdapter
- Ashby: ashby.AshbyAdapter

Use the factory function to instantiate adapters:
    from jobfeed.adapters import get_adapter
    adapter = get_adapter(employer_config, advanced_config, rate_limiter)
    postings = adapter.fetch(employer_config)

A failed fetch raises SourceFetchError (or a subclass); it never returns an
empty list.
"""

from .ashby import AshbyAdapter
from .base import BaseAdapter
from .exceptions import (
    SourceConfigurationError,
    SourceFetchError,
    SourceHTTPError,
    SourceResponseError,
    SourceTimeoutError,
)
from .factory import ADAPTERS, get_adapter
from .greenhouse import GreenhouseAdapter
from .lever import LeverAdapter
from .rate_limit import RateLimiter

__all__ = [
    # Base and factory
    "BaseAdapter",
    "get_adapter",
    "ADAPTERS",
    "RateLimiter",
    # Adapters
    "GreenhouseAdapter",
    "LeverAdapter",
    "AshbyAdapter",
    # Exceptions
    "SourceFetchError",
    "SourceHTTPError",
    "SourceTimeoutError",
    "SourceResponseError",
    "SourceConfigurationError",
]
