"""Slack-compatible incoming-webhook client."""

import logging
from typing import Dict, Optional

import requests

from .models import DeliveryError

logger = logging.getLogger(__name__)

CHANNEL = "webhook"


class WebhookClient:
    """Posts JSON payloads to an incoming-webhook URL.

    4xx answers other than 429 mean the payload or URL is wrong and are not
    worth retrying; everything else is.
    """

    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._session = session or requests.Session()

    def send(self, url: str, payload: Dict) -> None:
        """POST ``payload`` to ``url``.

        Raises:
            DeliveryError: On timeouts, connection failures and error statuses
        """
        try:
            response = self._session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise DeliveryError(f"Webhook request timed out after {self.timeout}s", channel=CHANNEL) from e
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Webhook request failed: {e}", channel=CHANNEL) from e

        if response.status_code >= 400:
            retryable = response.status_code >= 500 or response.status_code == 429
            raise DeliveryError(
                f"Webhook answered HTTP {response.status_code}: {response.text[:200]}",
                channel=CHANNEL,
                retryable=retryable,
            )

        logger.debug(f"Webhook accepted payload with HTTP {response.status_code}")

    def close(self) -> None:
        self._session.close()
