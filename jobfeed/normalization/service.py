"""Location and department canonicalization.

Converts the free-text location and department strings a source publishes
into index-safe tokens:
1. Locations go through an ordered rule table; first match wins
2. Unmatched locations fall back to a slug (lowercase, underscores, no commas)
3. Departments are slugged with "&" spelled out as "and"

Both operations are pure: identical input always yields the identical token.
"""

import re
from typing import Any, Iterable, Optional, Pattern, Tuple

from jobfeed.logging import get_logger

from .exceptions import NormalizationError
from .rules import DEFAULT_LOCATION_RULES, LocationRule

logger = get_logger(__name__, component="normalization")

_WHITESPACE = re.compile(r"\s+")


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise NormalizationError(
            f"{field} must be a string, got {type(value).__name__}"
        )
    return value


def _compile_rule(rule: LocationRule) -> Optional[Pattern[str]]:
    if not rule.whole_word:
        return None
    return re.compile(rf"(?<![a-z0-9]){re.escape(rule.pattern)}(?![a-z0-9])")


class Normalizer:
    """Canonicalizes raw location and department strings.

    The rule table is fixed at construction. Pass a custom table to override
    the defaults for one deployment; the instance never mutates it.
    """

    def __init__(self, location_rules: Optional[Iterable[LocationRule]] = None):
        """Initialize Normalizer.

        Args:
            location_rules: Ordered location rules (defaults to DEFAULT_LOCATION_RULES)
        """
        rules = DEFAULT_LOCATION_RULES if location_rules is None else tuple(location_rules)
        self._rules: Tuple[Tuple[LocationRule, Optional[Pattern[str]]], ...] = tuple(
            (rule, _compile_rule(rule)) for rule in rules
        )

    @property
    def location_rules(self) -> Tuple[LocationRule, ...]:
        return tuple(rule for rule, _ in self._rules)

    def normalize_location(self, raw: str) -> str:
        """Map a raw location to its canonical token.

        Args:
            raw: Location as published, e.g. "New York, NY"

        Returns:
            Canonical token, e.g. "new_york"

        Raises:
            NormalizationError: If raw is not a string
        """
        text = _require_text(raw, "location").lower().strip()

        for rule, pattern in self._rules:
            if pattern is not None:
                if pattern.search(text):
                    return rule.token
            elif rule.pattern in text:
                return rule.token

        slug = _WHITESPACE.sub("_", text).replace(",", "")
        return slug.strip("_")

    def normalize_department(self, raw: str) -> str:
        """Map a raw department to its index token.

        "Research & Development" becomes "research_and_development".

        Raises:
            NormalizationError: If raw is not a string
        """
        text = _require_text(raw, "department").lower().strip()
        return _WHITESPACE.sub("_", text).replace("&", "and")


_default_normalizer = Normalizer()


def normalize_location(raw: str) -> str:
    """Normalize a location with the default rule table."""
    return _default_normalizer.normalize_location(raw)


def normalize_department(raw: str) -> str:
    """Normalize a department string."""
    return _default_normalizer.normalize_department(raw)
