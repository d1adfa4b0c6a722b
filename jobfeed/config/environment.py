"""Environment variable loading and validation."""

import os
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_STORE_URL = "sqlite:///./data/jobfeed.db"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        store_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        alert_to_email: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        webhook_url: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.store_url = store_url or DEFAULT_STORE_URL
        self.log_level = log_level
        self.environment = environment or "production"
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.alert_to_email = alert_to_email
        self.smtp_sender_name = smtp_sender_name or "jobfeed"
        self.webhook_url = webhook_url

    @property
    def recipients(self) -> List[str]:
        """ALERT_TO_EMAIL split on commas."""
        if not self.alert_to_email:
            return []
        return [email.strip() for email in self.alert_to_email.split(",") if email.strip()]


def load_environment_config(email_enabled: bool = False, webhook_enabled: bool = False) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Always read:
    - STORE_URL: Index store URL (default: sqlite:///./data/jobfeed.db)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENVIRONMENT: Deployment label attached to every log line

    Required when e-mail delivery is enabled:
    - SMTP_HOST, SMTP_PORT, ALERT_TO_EMAIL
    - SMTP_USER / SMTP_PASS (optional, but both or neither)
    - SMTP_SENDER_NAME (optional)

    Required when webhook delivery is enabled:
    - NOTIFY_WEBHOOK_URL

    Args:
        email_enabled: Whether notifications.email_enabled is set
        webhook_enabled: Whether notifications.webhook_enabled is set

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    store_url = os.getenv("STORE_URL")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    alert_to_email = os.getenv("ALERT_TO_EMAIL")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME")
    webhook_url = os.getenv("NOTIFY_WEBHOOK_URL")

    if store_url is not None and not store_url.strip():
        errors.append("STORE_URL is set but empty")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    smtp_port = None
    if email_enabled:
        if not smtp_host:
            errors.append("Missing required environment variable: SMTP_HOST")
        if not smtp_port_str:
            errors.append("Missing required environment variable: SMTP_PORT")
        if not alert_to_email:
            errors.append("Missing required environment variable: ALERT_TO_EMAIL")

    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(
                    f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535."
                )
        except ValueError:
            errors.append(
                f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer."
            )

    if alert_to_email:
        for email in alert_to_email.split(","):
            if not _is_valid_email(email.strip()):
                errors.append(
                    f"Invalid email address format in ALERT_TO_EMAIL: '{email.strip()}'"
                )

    if smtp_user and not smtp_pass:
        errors.append(
            "SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication."
        )
    elif smtp_pass and not smtp_user:
        errors.append(
            "SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication."
        )

    if webhook_enabled:
        if not webhook_url:
            errors.append("Missing required environment variable: NOTIFY_WEBHOOK_URL")
        elif not webhook_url.startswith(("http://", "https://")):
            errors.append(f"Invalid NOTIFY_WEBHOOK_URL: '{webhook_url}'. Must be an http(s) URL.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your values",
                "SMTP_* variables are only needed when notifications.email_enabled is true",
                "NOTIFY_WEBHOOK_URL is only needed when notifications.webhook_enabled is true",
            ],
        )

    return EnvironmentConfig(
        store_url=store_url,
        log_level=log_level.upper() if log_level else None,
        environment=environment,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        alert_to_email=alert_to_email,
        smtp_sender_name=smtp_sender_name,
        webhook_url=webhook_url,
    )


def _is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
        return True
    except EmailNotValidError:
        return False
