# placesearch/schemas/__init__.py
"""Search inputs and read models."""

from .area_filter import (
    AreaFilter,
    AreaKind,
    AreaMatch,
    BoundsArea,
    CircleArea,
    PolygonArea,
    RegionArea,
    SpatialSearchContext,
    parse_area_filter,
)
from .place import GeoPoint, GeoPolygon, Place, SearchResult
from .place_search import SearchFilters

__all__ = [
    "AreaFilter",
    "AreaKind",
    "AreaMatch",
    "BoundsArea",
    "CircleArea",
    "GeoPoint",
    "GeoPolygon",
    "Place",
    "PolygonArea",
    "RegionArea",
    "SearchFilters",
    "SearchResult",
    "SpatialSearchContext",
    "parse_area_filter",
]
