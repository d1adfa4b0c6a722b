"""Immutable rule tables for location canonicalization and tag extraction.

The defaults below are what a deployment gets when its config does not
override them. Tables are tuples of frozen dataclasses: order is significant
(first matching location rule wins, heuristics apply in sequence) and nothing
can mutate them after construction.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class LocationRule:
    """Map any location containing ``pattern`` to ``token``.

    Attributes:
        pattern: Lowercase text to look for in the lowercased location
        token: Canonical index token
        whole_word: Only match ``pattern`` as a standalone word. Needed for
            short codes such as "ny" that would otherwise hit "Sydney".
    """

    pattern: str
    token: str
    whole_word: bool = False


@dataclass(frozen=True)
class TagHeuristic:
    """Add ``tag`` when any of ``words`` occurs as a whole word or its plural."""

    tag: str
    words: Tuple[str, ...]


# Substring matching throughout, except the two-letter codes: those match
# whole words only, so "Sydney" and "Albany" never resolve to new_york.
DEFAULT_LOCATION_RULES: Tuple[LocationRule, ...] = (
    LocationRule("new york", "new_york"),
    LocationRule("nyc", "new_york"),
    LocationRule("ny", "new_york", whole_word=True),
    LocationRule("chicago", "chicago"),
    LocationRule("il", "chicago", whole_word=True),
    LocationRule("london", "london"),
    LocationRule("uk", "london", whole_word=True),
    LocationRule("san francisco", "san_francisco"),
    LocationRule("sf", "san_francisco", whole_word=True),
    LocationRule("remote", "remote"),
)

DEFAULT_TAG_KEYWORDS: Tuple[str, ...] = (
    "quant", "quantitative", "trading", "risk", "alpha", "signal",
    "portfolio", "derivatives", "options", "futures", "hft",
    "low latency", "market making", "execution", "pricing",
    "stochastic", "statistical", "backtesting", "factor",
    "systematic", "algo", "algorithmic", "research",
    "machine learning", "data scientist", "data science",
    "c++", "rust", "fpga", "python", "kdb", "q language",
)

DEFAULT_TAG_HEURISTICS: Tuple[TagHeuristic, ...] = (
    TagHeuristic("engineering", ("engineer", "engineering", "developer", "software", "swe")),
    TagHeuristic("research", ("research", "researcher")),
    TagHeuristic("analyst", ("analyst", "analysis")),
    TagHeuristic("intern", ("intern", "internship")),
    TagHeuristic("senior", ("senior", "sr", "staff", "principal", "lead")),
    TagHeuristic("junior", ("junior", "jr", "associate", "entry")),
    TagHeuristic("quant", ("quant", "quantitative", "trading", "trader", "risk", "derivatives", "pricing", "alpha")),
)
