"""Configuration management module for jobfeed."""

from .duration import DurationParseError, parse_duration, parse_timedelta
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_app_config, load_config, validate_config_file
from .models import (
    AdvancedConfig,
    AppConfig,
    EmployerConfig,
    LocationRuleConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    NormalizationConfig,
    NotificationConfig,
    ReconciliationConfig,
    SourceType,
)

__all__ = [
    # Main loader functions
    "load_config",
    "load_app_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "EmployerConfig",
    "ReconciliationConfig",
    "NormalizationConfig",
    "LocationRuleConfig",
    "NotificationConfig",
    "LoggingConfig",
    "AdvancedConfig",
    "EnvironmentConfig",
    # Enums
    "SourceType",
    "LogLevel",
    "LogFormat",
    # Durations
    "parse_duration",
    "parse_timedelta",
    "DurationParseError",
    # Exceptions
    "ConfigurationError",
]
