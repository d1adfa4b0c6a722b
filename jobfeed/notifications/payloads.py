"""Digest building and template context for change-event notifications."""

from typing import Dict, Iterable, List, Optional

from jobfeed.domain.models import ChangeEvent, ChangeEventType
from jobfeed.utils.timestamps import format_timestamp, utc_now

from .models import Digest

DEFAULT_MAX_CREATED = 20
DEFAULT_MAX_REMOVED = 10


def build_digest(
    events: Iterable[ChangeEvent],
    max_created: int = DEFAULT_MAX_CREATED,
    max_removed: int = DEFAULT_MAX_REMOVED,
    generated_at=None,
) -> Digest:
    """Split events by type, newest first, and cap each list.

    Ties on timestamp are broken by employer and title so the same events
    always produce the same digest.

    Args:
        events: Change events from one or more reconciliation cycles
        max_created: Created events to show; the rest only count
        max_removed: Removed events to show; the rest only count
        generated_at: Digest timestamp (defaults to now)

    Returns:
        Digest with capped lists and full totals
    """
    created: List[ChangeEvent] = []
    removed: List[ChangeEvent] = []
    for event in events:
        if event.event == ChangeEventType.CREATED:
            created.append(event)
        else:
            removed.append(event)

    created.sort(key=_sort_key)
    removed.sort(key=_sort_key)

    return Digest(
        created=created[:max_created],
        removed=removed[:max_removed],
        created_total=len(created),
        removed_total=len(removed),
        generated_at=generated_at or utc_now(),
    )


def _sort_key(event: ChangeEvent):
    return (-event.timestamp.timestamp(), event.employer, event.title)


def event_context(event: ChangeEvent) -> Dict:
    """Flatten one event into template-friendly values."""
    return {
        "employer": event.employer,
        "employer_name": event.employer_name or event.employer,
        "title": event.title,
        "url": event.url,
        "location": event.location,
        "department": event.department,
        "tags": list(event.tags),
        "timestamp": format_timestamp(event.timestamp),
    }


def build_digest_context(digest: Digest, environment: Optional[str] = None) -> Dict:
    """Build the Jinja2 context for the digest templates.

    Returns:
        Dictionary with keys:
        - created, removed: lists of event contexts
        - created_total, removed_total: full counts for the run
        - created_overflow, removed_overflow: events not listed
        - generated_at: ISO timestamp of the digest
        - environment: deployment label, or empty string
    """
    return {
        "created": [event_context(e) for e in digest.created],
        "removed": [event_context(e) for e in digest.removed],
        "created_total": digest.created_total,
        "removed_total": digest.removed_total,
        "created_overflow": digest.created_overflow,
        "removed_overflow": digest.removed_overflow,
        "generated_at": format_timestamp(digest.generated_at),
        "environment": environment or "",
    }


def build_webhook_payload(digest: Digest, text: str) -> Dict:
    """Slack-compatible incoming-webhook body.

    ``text`` is the fallback shown by clients that ignore blocks; the blocks
    list the same capped events as the e-mail digest.
    """
    blocks: List[Dict] = [
        {"type": "section", "text": {"type": "mrkdwn", "text": f"*{text}*"}},
    ]
    if digest.created:
        lines = [f"• <{e.url}|{e.title}> at {e.employer_name or e.employer} ({e.location})"
                 if e.url else f"• {e.title} at {e.employer_name or e.employer} ({e.location})"
                 for e in digest.created]
        if digest.created_overflow:
            lines.append(f"…and {digest.created_overflow} more")
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": "*New postings*\n" + "\n".join(lines)},
        })
    if digest.removed:
        lines = [f"• {e.title} at {e.employer_name or e.employer}" for e in digest.removed]
        if digest.removed_overflow:
            lines.append(f"…and {digest.removed_overflow} more")
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": "*Removed postings*\n" + "\n".join(lines)},
        })
    return {"text": text, "blocks": blocks}
