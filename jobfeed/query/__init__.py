"""Query support: index intersections, feed ranges and hydration."""

from .models import ListingPage, ListingQuery
from .service import ListingQueryService

__all__ = ["ListingQueryService", "ListingQuery", "ListingPage"]
