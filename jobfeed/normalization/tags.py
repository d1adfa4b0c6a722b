"""Topical tag extraction from posting title and department."""

import re
from typing import Iterable, Optional, Pattern, Set, Tuple

from .exceptions import NormalizationError
from .rules import DEFAULT_TAG_HEURISTICS, DEFAULT_TAG_KEYWORDS, TagHeuristic


def keyword_to_tag(keyword: str) -> str:
    return keyword.strip().lower().replace(" ", "_")


class TagExtractor:
    """Derives a tag set from title and department.

    Two layers run over ``"{title} {department}"`` lowercased:

    - keywords: case-insensitive substring hits, each contributing the keyword
      itself with spaces turned into underscores ("low latency" -> "low_latency")
    - heuristics: role and seniority vocabulary matched as whole words or
      their plurals, each contributing one umbrella tag ("Senior" -> "senior")

    Heuristics use word boundaries so "Internal Tools" does not produce
    ``intern`` and "Leadership" does not produce ``senior``.
    """

    def __init__(
        self,
        keywords: Optional[Iterable[str]] = None,
        heuristics: Optional[Iterable[TagHeuristic]] = None,
    ):
        self._keywords: Tuple[str, ...] = tuple(
            k.strip().lower()
            for k in (DEFAULT_TAG_KEYWORDS if keywords is None else keywords)
            if k and k.strip()
        )
        self._heuristics: Tuple[Tuple[str, Pattern[str]], ...] = tuple(
            (h.tag, self._word_pattern(h.words))
            for h in (DEFAULT_TAG_HEURISTICS if heuristics is None else heuristics)
        )

    @property
    def keywords(self) -> Tuple[str, ...]:
        return self._keywords

    @staticmethod
    def _word_pattern(words: Iterable[str]) -> Pattern[str]:
        alternatives = "|".join(re.escape(w.lower()) for w in words)
        # a plural "s" or "es" is allowed, any other suffix is a different word
        return re.compile(rf"(?<![a-z0-9])(?:{alternatives})(?:e?s)?(?![a-z0-9])")

    def extract_tags(self, title: str, department: str) -> Set[str]:
        """Extract the tag set for a posting.

        Args:
            title: Posting title
            department: Raw department string

        Returns:
            Set of tag tokens (sort before persisting)

        Raises:
            NormalizationError: If either argument is not a string
        """
        if not isinstance(title, str) or not isinstance(department, str):
            raise NormalizationError("title and department must be strings")

        text = f"{title} {department}".lower()
        tags: Set[str] = set()

        for keyword in self._keywords:
            if keyword in text:
                tags.add(keyword_to_tag(keyword))

        for tag, pattern in self._heuristics:
            if pattern.search(text):
                tags.add(tag)

        return tags


_default_extractor = TagExtractor()


def extract_tags(title: str, department: str) -> Set[str]:
    """Extract tags with the default keyword and heuristic tables."""
    return _default_extractor.extract_tags(title, department)
