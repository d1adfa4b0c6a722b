"""Factory function for instantiating board adapters."""

import logging
from typing import Dict, Optional, Type

from jobfeed.config.models import AdvancedConfig, EmployerConfig

from .ashby import AshbyAdapter
from .base import BaseAdapter
from .exceptions import SourceConfigurationError
from .greenhouse import GreenhouseAdapter
from .lever import LeverAdapter
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)

ADAPTERS: Dict[str, Type[BaseAdapter]] = {
    "greenhouse": GreenhouseAdapter,
    "lever": LeverAdapter,
    "ashby": AshbyAdapter,
}


def get_adapter(
    employer: EmployerConfig,
    advanced_config: AdvancedConfig,
    rate_limiter: Optional[RateLimiter] = None,
) -> BaseAdapter:
    """Instantiate the adapter for an employer's board platform.

    Args:
        employer: Employer configuration with platform type and identifier
        advanced_config: Timeout, user-agent and board-size settings
        rate_limiter: Shared RateLimiter; pass the same one for every adapter

    Returns:
        Adapter instance for the employer's platform

    Raises:
        SourceConfigurationError: If the platform is not supported or config is invalid

    Example:
        >>> employer = EmployerConfig(name="Acme", type="greenhouse", identifier="acme")
        >>> adapter = get_adapter(employer, AdvancedConfig())
        >>> postings = adapter.fetch(employer)
    """
    source_type = str(getattr(employer.type, "value", employer.type)).lower()
    adapter_class = ADAPTERS.get(source_type)

    if not adapter_class:
        supported_types = ", ".join(sorted(ADAPTERS))
        raise SourceConfigurationError(
            f"Unknown board type: {employer.type}. Supported types: {supported_types}",
            employer_id=employer.identifier,
        )

    logger.debug(
        "Creating adapter instance",
        extra={
            "source_type": source_type,
            "employer_id": employer.identifier,
            "adapter_class": adapter_class.__name__,
        },
    )

    try:
        return adapter_class(
            timeout=advanced_config.http_request_timeout,
            user_agent=advanced_config.user_agent,
            rate_limiter=rate_limiter,
            large_board_warning=advanced_config.large_board_warning,
        )
    except SourceConfigurationError:
        raise
    except Exception as e:
        raise SourceConfigurationError(
            f"Failed to create {source_type} adapter: {e}", employer_id=employer.identifier
        ) from e
