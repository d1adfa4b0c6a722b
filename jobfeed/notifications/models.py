"""Data models and exceptions for change-event notifications.

A run's change events are folded into one Digest, rendered once, and handed
to every enabled channel. Each channel reports back a ChannelResult; the
DeliveryResult collects them for the pipeline's run summary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from jobfeed.domain.models import ChangeEvent


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class DeliveryError(NotificationError):
    """Raised when a channel fails to deliver a digest."""

    def __init__(self, message: str, channel: str = "", retryable: bool = True):
        super().__init__(message)
        self.channel = channel
        self.retryable = retryable


@dataclass
class Digest:
    """Change events of one run, capped for display.

    Attributes:
        created: Created events shown in the digest (newest first)
        removed: Removed events shown in the digest (newest first)
        created_total: All created events in the run
        removed_total: All removed events in the run
        generated_at: When the digest was built
    """

    created: List[ChangeEvent]
    removed: List[ChangeEvent]
    created_total: int
    removed_total: int
    generated_at: datetime

    @property
    def created_overflow(self) -> int:
        return self.created_total - len(self.created)

    @property
    def removed_overflow(self) -> int:
        return self.removed_total - len(self.removed)

    @property
    def is_empty(self) -> bool:
        return self.created_total == 0 and self.removed_total == 0


@dataclass
class ChannelResult:
    """Outcome of delivering a digest through one channel."""

    channel: str
    status: str  # "sent", "failed"
    attempts: int
    error: Optional[str] = None

    def is_success(self) -> bool:
        return self.status == "sent"


@dataclass
class DeliveryResult:
    """Outcome of one ``NotificationService.deliver`` call.

    Attributes:
        status: "sent" when every channel succeeded, "partial" when some did,
            "failed" when none did, "skipped" when nothing was sent
        events: Number of events the digest covered
        channels: Per-channel results, in delivery order
        reason: Why delivery was skipped, when it was
    """

    status: str
    events: int = 0
    channels: List[ChannelResult] = field(default_factory=list)
    reason: Optional[str] = None

    def is_success(self) -> bool:
        return self.status in ("sent", "skipped")

    @classmethod
    def skipped(cls, reason: str, events: int = 0) -> "DeliveryResult":
        return cls(status="skipped", events=events, reason=reason)

    @classmethod
    def from_channels(cls, channels: List[ChannelResult], events: int) -> "DeliveryResult":
        sent = sum(1 for c in channels if c.is_success())
        if sent == len(channels):
            status = "sent"
        elif sent:
            status = "partial"
        else:
            status = "failed"
        return cls(status=status, events=events, channels=channels)
