"""Notification service for delivering change-event digests.

One call per sync run: the run's events are folded into a digest, rendered
once with Jinja2, and sent through every enabled channel (SMTP e-mail and/or
a Slack-compatible webhook) with retry and exponential backoff. Events are
delivered at-least-once; nothing here is persisted.
"""

import logging
import time
from typing import Callable, Iterable, List, Optional

from jobfeed.config.environment import EnvironmentConfig
from jobfeed.config.models import NotificationConfig
from jobfeed.domain.models import ChangeEvent
from jobfeed.logging import get_logger

from .models import (
    ChannelResult,
    DeliveryError,
    DeliveryResult,
    Digest,
    NotificationTemplateError,
)
from .payloads import build_digest, build_digest_context, build_webhook_payload
from .smtp_client import SMTPClient, build_message
from .templates import TemplateRenderer
from .webhook import WebhookClient

logger = get_logger(__name__, component="notification")

MAX_RETRY_DELAY = 60.0


class NotificationService:
    """Delivers one digest per run through the configured channels.

    A channel that keeps failing after all retries is reported in the
    DeliveryResult; it never raises into the caller.
    """

    def __init__(
        self,
        notification_config: NotificationConfig,
        env_config: EnvironmentConfig,
        template_renderer: Optional[TemplateRenderer] = None,
        smtp_client: Optional[SMTPClient] = None,
        webhook_client: Optional[WebhookClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize notification service.

        Args:
            notification_config: Channel switches, retry and digest settings
            env_config: SMTP settings, recipients and webhook URL
            template_renderer: Template renderer (creates default if None)
            smtp_client: SMTP client (creates default if None)
            webhook_client: Webhook client (creates default if None)
            sleep: Used between retries; tests pass a no-op
            logger_instance: Logger instance (uses module logger if None)
        """
        self.config = notification_config
        self.env_config = env_config
        self.template_renderer = template_renderer or TemplateRenderer()
        self.smtp_client = smtp_client or SMTPClient()
        self.webhook_client = webhook_client or WebhookClient()
        self._sleep = sleep
        self.logger = logger_instance or logger

    @property
    def enabled_channels(self) -> List[str]:
        channels = []
        if self.config.email_enabled:
            channels.append("email")
        if self.config.webhook_enabled:
            channels.append("webhook")
        return channels

    def deliver(self, events: Iterable[ChangeEvent]) -> DeliveryResult:
        """Build, render and send the digest for ``events``.

        Returns:
            DeliveryResult; "skipped" when there are no events or no channels
        """
        events = list(events)
        if not events:
            self.logger.debug(
                "No change events, nothing to deliver",
                extra={"event": "notification.skip", "reason": "no_events"},
            )
            return DeliveryResult.skipped("no_events")

        channels = self.enabled_channels
        if not channels:
            self.logger.info(
                f"{len(events)} change events not delivered: no channel enabled",
                extra={"event": "notification.skip", "reason": "no_channels"},
            )
            return DeliveryResult.skipped("no_channels", events=len(events))

        digest = build_digest(
            events,
            max_created=self.config.max_new_in_digest,
            max_removed=self.config.max_removed_in_digest,
        )

        try:
            rendered = self.template_renderer.render(
                build_digest_context(digest, environment=self.env_config.environment)
            )
        except NotificationTemplateError as e:
            # Template errors are a packaging fault; retrying will not help.
            self.logger.error(
                f"Digest rendering failed: {e}",
                extra={"event": "notification.render.failure"},
            )
            return DeliveryResult(
                status="failed",
                events=len(events),
                channels=[ChannelResult(channel=c, status="failed", attempts=0, error=str(e))
                          for c in channels],
            )

        results = []
        for channel in channels:
            if channel == "email":
                results.append(self._deliver_email(rendered))
            else:
                results.append(self._deliver_webhook(digest, rendered["subject"]))

        result = DeliveryResult.from_channels(results, events=len(events))
        self.logger.info(
            f"Digest delivery {result.status}: {digest.created_total} created, "
            f"{digest.removed_total} removed via {', '.join(channels)}",
            extra={
                "event": "notification.digest.complete",
                "status": result.status,
                "created": digest.created_total,
                "removed": digest.removed_total,
            },
        )
        return result

    def _deliver_email(self, rendered) -> ChannelResult:
        try:
            message = build_message(
                rendered["subject"], rendered["text_body"], rendered["html_body"], self.env_config
            )
        except ValueError as e:
            self.logger.error(
                f"Failed to build email message: {e}",
                extra={"event": "notification.send.failure", "channel": "email"},
            )
            return ChannelResult(channel="email", status="failed", attempts=0, error=str(e))

        return self._with_retries(
            "email",
            lambda: self.smtp_client.send(message, self.env_config, self.config.use_tls),
        )

    def _deliver_webhook(self, digest: Digest, summary: str) -> ChannelResult:
        payload = build_webhook_payload(digest, summary)
        return self._with_retries(
            "webhook",
            lambda: self.webhook_client.send(self.env_config.webhook_url, payload),
        )

    def _with_retries(self, channel: str, send: Callable[[], None]) -> ChannelResult:
        max_attempts = self.config.max_retries + 1
        last_error = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = min(
                    self.config.retry_initial_delay
                    * (self.config.retry_backoff_multiplier ** (attempt - 2)),
                    MAX_RETRY_DELAY,
                )
                self.logger.warning(
                    f"Retrying {channel} delivery (attempt {attempt}/{max_attempts}) after {delay:.1f}s",
                    extra={"event": "notification.send.attempt", "channel": channel, "attempt": attempt},
                )
                self._sleep(delay)

            try:
                send()
            except DeliveryError as e:
                last_error = str(e)
                retry_remaining = e.retryable and attempt < max_attempts
                self.logger.log(
                    logging.WARNING if retry_remaining else logging.ERROR,
                    f"{channel} delivery failed (attempt {attempt}/{max_attempts}): {e}",
                    extra={
                        "event": "notification.send.failure",
                        "channel": channel,
                        "attempt": attempt,
                        "retry_remaining": retry_remaining,
                    },
                )
                if not retry_remaining:
                    return ChannelResult(
                        channel=channel, status="failed", attempts=attempt, error=last_error
                    )
                continue

            self.logger.info(
                f"Digest sent via {channel} (attempts: {attempt})",
                extra={"event": "notification.send.success", "channel": channel, "attempt": attempt},
            )
            return ChannelResult(channel=channel, status="sent", attempts=attempt)

        return ChannelResult(channel=channel, status="failed", attempts=max_attempts, error=last_error)
