"""Configuration schema models using Pydantic."""

from datetime import timedelta
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from jobfeed.normalization.rules import LocationRule

from .duration import DurationParseError, parse_duration, validate_duration_range


class SourceType(str, Enum):
    """Supported job board platforms."""

    GREENHOUSE = "greenhouse"
    LEVER = "lever"
    ASHBY = "ashby"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _checked_duration(value: str, min_seconds: int, max_seconds: int, label: str) -> str:
    try:
        validate_duration_range(parse_duration(value), min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class EmployerConfig(BaseModel):
    """Configuration for a single employer job board."""

    name: str = Field(..., min_length=1, description="Human-readable employer name")
    type: SourceType = Field(..., description="Board platform (greenhouse, lever, ashby)")
    identifier: str = Field(
        ..., min_length=1, description="Board token used in the API endpoint; also the employer id"
    )
    enabled: bool = Field(True, description="Whether to sync this employer")

    @field_validator("name", "identifier")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from string fields."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        if ":" in v:
            raise ValueError(f"identifier must not contain ':' (got '{v}')")
        return v

    model_config = {"use_enum_values": True}


class ReconciliationConfig(BaseModel):
    """Reconciliation cycle settings."""

    removed_retention: str = Field(
        "90d", description="How long removed listings are kept before deletion"
    )
    max_workers: int = Field(
        1, ge=1, le=16, description="Employers reconciled concurrently (1 = sequential)"
    )
    inter_employer_delay_ms: int = Field(
        500, ge=0, le=60000, description="Pause between employers in sequential mode"
    )
    cycle_timeout: str = Field(
        "10m", description="Deadline for one employer's fetch + reconciliation"
    )

    @field_validator("removed_retention")
    @classmethod
    def validate_retention(cls, v: str) -> str:
        return _checked_duration(v, 3600, 3650 * 86400, "Removed retention")

    @field_validator("cycle_timeout")
    @classmethod
    def validate_cycle_timeout(cls, v: str) -> str:
        return _checked_duration(v, 10, 6 * 3600, "Cycle timeout")

    @property
    def removed_retention_delta(self) -> timedelta:
        return timedelta(seconds=parse_duration(self.removed_retention))

    @property
    def cycle_timeout_seconds(self) -> int:
        return parse_duration(self.cycle_timeout)


class LocationRuleConfig(BaseModel):
    """One location rule override."""

    pattern: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    whole_word: bool = False

    @field_validator("pattern", "token")
    @classmethod
    def lowercase(cls, v: str) -> str:
        stripped = v.strip().lower()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped


class NormalizationConfig(BaseModel):
    """Per-deployment overrides for the normalization rule tables.

    Leaving a field unset keeps the built-in table.
    """

    location_rules: Optional[List[LocationRuleConfig]] = Field(
        None, description="Ordered location rules; first match wins"
    )
    tag_keywords: Optional[List[str]] = Field(
        None, description="Keywords matched as substrings of title + department"
    )

    @field_validator("tag_keywords")
    @classmethod
    def normalize_keywords(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Lowercase, strip and de-duplicate keywords while keeping order."""
        if v is None:
            return None
        normalized = []
        for keyword in v:
            stripped = keyword.strip().lower()
            if stripped and stripped not in normalized:
                normalized.append(stripped)
        return normalized

    def build_location_rules(self) -> Optional[Tuple[LocationRule, ...]]:
        if self.location_rules is None:
            return None
        return tuple(
            LocationRule(rule.pattern, rule.token, rule.whole_word) for rule in self.location_rules
        )


class NotificationConfig(BaseModel):
    """Change-event delivery settings."""

    email_enabled: bool = Field(False, description="Send digests over SMTP")
    webhook_enabled: bool = Field(False, description="Post digests to a Slack-compatible webhook")
    use_tls: bool = Field(True, description="Use STARTTLS for SMTP")
    max_retries: int = Field(
        3, ge=0, le=10, description="Number of retry attempts for failed sends"
    )
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=5.0, description="Exponential backoff multiplier for retries"
    )
    retry_initial_delay: int = Field(
        5, ge=1, le=60, description="Initial retry delay in seconds"
    )
    max_new_in_digest: int = Field(20, ge=1, le=500)
    max_removed_in_digest: int = Field(10, ge=0, le=500)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AdvancedConfig(BaseModel):
    """Advanced runtime settings."""

    http_request_timeout: int = Field(
        30, ge=5, le=300, description="Request timeout for board API calls (seconds)"
    )
    user_agent: str = Field(
        "jobfeed/1.0",
        min_length=1,
        description="User-Agent string for HTTP requests",
    )
    min_request_interval_ms: int = Field(
        250, ge=0, le=60000, description="Minimum gap between requests to one platform"
    )
    large_board_warning: int = Field(
        5000, ge=1, description="Log a warning when a board returns more postings than this"
    )

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        """Strip whitespace from user agent."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


class AppConfig(BaseModel):
    """Root configuration object for jobfeed."""

    employers: List[EmployerConfig] = Field(
        ..., min_length=1, description="Employer job boards to track"
    )
    sync_interval: str = Field("30m", description="Interval between sync runs")
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    advanced: AdvancedConfig = Field(
        default_factory=AdvancedConfig, description="Advanced runtime settings"
    )

    # Computed field
    sync_interval_seconds: Optional[int] = None

    @field_validator("sync_interval")
    @classmethod
    def validate_sync_interval(cls, v: str) -> str:
        return _checked_duration(v, 300, 86400, "Sync interval")

    @model_validator(mode="after")
    def validate_employers_and_compute_fields(self):
        """Validate the employer roster and compute derived fields."""
        if not any(employer.enabled for employer in self.employers):
            raise ValueError(
                "At least one employer must be enabled. All employers have enabled=false."
            )

        # identifier is the employer id, so it must be unique across platforms
        seen = set()
        for employer in self.employers:
            if employer.identifier in seen:
                raise ValueError(
                    f"Duplicate employer: {employer.identifier} appears multiple times"
                )
            seen.add(employer.identifier)

        self.sync_interval_seconds = parse_duration(self.sync_interval)
        return self

    def get_enabled_employers(self) -> List[EmployerConfig]:
        """Get list of enabled employers."""
        return [employer for employer in self.employers if employer.enabled]

    def get_employer(self, identifier: str) -> Optional[EmployerConfig]:
        """Get an employer by its identifier."""
        for employer in self.employers:
            if employer.identifier == identifier:
                return employer
        return None
