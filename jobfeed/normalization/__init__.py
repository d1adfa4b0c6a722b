"""Normalization layer: location/department tokens and tag extraction."""

from .exceptions import NormalizationError
from .models import PreparedPosting
from .rules import (
    DEFAULT_LOCATION_RULES,
    DEFAULT_TAG_HEURISTICS,
    DEFAULT_TAG_KEYWORDS,
    LocationRule,
    TagHeuristic,
)
from .service import Normalizer, normalize_department, normalize_location
from .tags import TagExtractor, extract_tags

__all__ = [
    "Normalizer",
    "TagExtractor",
    "PreparedPosting",
    "NormalizationError",
    "LocationRule",
    "TagHeuristic",
    "DEFAULT_LOCATION_RULES",
    "DEFAULT_TAG_KEYWORDS",
    "DEFAULT_TAG_HEURISTICS",
    "normalize_location",
    "normalize_department",
    "extract_tags",
]
