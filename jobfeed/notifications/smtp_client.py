"""SMTP client wrapper for digest delivery.

This module provides a thin wrapper around Python's smtplib with support
for TLS/SSL, authentication, and proper connection lifecycle management.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, List, Optional

from email_validator import EmailNotValidError, validate_email

from jobfeed.config.environment import EnvironmentConfig

from .models import DeliveryError

logger = logging.getLogger(__name__)

CHANNEL = "email"


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    The factories exist so tests can hand in mocks instead of real
    connections.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
        timeout: float = 30.0,
    ):
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.timeout = timeout

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
    ) -> None:
        """Send an email message via SMTP.

        Port 465 uses implicit TLS; any other port uses plain SMTP upgraded
        with STARTTLS when ``use_tls`` is set.

        Raises:
            DeliveryError: If message delivery fails
        """
        smtp = None
        try:
            if env_config.smtp_port == 465:
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host, env_config.smtp_port, context=context, timeout=self.timeout
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(
                    env_config.smtp_host, env_config.smtp_port, timeout=self.timeout
                )
                if use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent to {message['To']}")

        except smtplib.SMTPAuthenticationError as e:
            raise DeliveryError(
                f"SMTP authentication failed: {e}", channel=CHANNEL, retryable=False
            ) from e
        except smtplib.SMTPException as e:
            raise DeliveryError(f"SMTP error during message delivery: {e}", channel=CHANNEL) from e
        except OSError as e:
            raise DeliveryError(f"Network error during SMTP connection: {e}", channel=CHANNEL) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def parse_recipients(recipient_string: str) -> List[str]:
    """Parse and validate comma-separated email addresses.

    Raises:
        ValueError: If any email address is invalid or none are given
    """
    recipients = []
    for email in (part.strip() for part in (recipient_string or "").split(",")):
        if not email:
            continue
        try:
            validated = validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address in ALERT_TO_EMAIL: '{email}' - {e}") from e
        recipients.append(validated.normalized)

    if not recipients:
        raise ValueError("No valid email addresses found in ALERT_TO_EMAIL")

    return recipients


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' address, e.g. ``"jobfeed <user@example.com>"``.

    Falls back to a noreply address at the SMTP host when no SMTP user is set.
    """
    sender_email = env_config.smtp_user or f"noreply@{env_config.smtp_host}"
    return f"{env_config.smtp_sender_name} <{sender_email}>"


def build_message(
    subject: str,
    text_body: str,
    html_body: str,
    env_config: EnvironmentConfig,
) -> EmailMessage:
    """Assemble a multipart/alternative message for the configured recipients.

    Raises:
        ValueError: If ALERT_TO_EMAIL holds no valid address
    """
    recipients = parse_recipients(env_config.alert_to_email)
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = build_sender_address(env_config)
    message["To"] = ", ".join(recipients)
    message.set_content(text_body)
    message.add_alternative(html_body, subtype="html")
    return message
