"""Change-event digest notifications.

- NotificationService: builds one digest per run and delivers it
- TemplateRenderer: Jinja2 subject/text/HTML rendering
- SMTPClient / WebhookClient: delivery channels
- build_digest: caps created/removed lists and counts the overflow
"""

from .models import (
    ChannelResult,
    DeliveryError,
    DeliveryResult,
    Digest,
    NotificationError,
    NotificationTemplateError,
)
from .payloads import build_digest, build_digest_context, build_webhook_payload
from .service import NotificationService
from .smtp_client import (
    SMTPClient,
    build_message,
    build_sender_address,
    parse_recipients,
)
from .templates import TemplateRenderer
from .webhook import WebhookClient

__all__ = [
    # Main service
    "NotificationService",
    # Models and results
    "Digest",
    "ChannelResult",
    "DeliveryResult",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "DeliveryError",
    # Components
    "TemplateRenderer",
    "SMTPClient",
    "WebhookClient",
    # Utilities
    "build_digest",
    "build_digest_context",
    "build_webhook_payload",
    "build_message",
    "build_sender_address",
    "parse_recipients",
]
