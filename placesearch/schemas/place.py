# placesearch/schemas/place.py
"""Read models returned by place search."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional


@dataclass
class GeoPoint:
    """GeoJSON point, ``coordinates`` is ``[lng, lat]``."""

    coordinates: List[float]
    type: str = "Point"

    @property
    def lng(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]


@dataclass
class GeoPolygon:
    """GeoJSON polygon, ``coordinates`` is ``[ring, *holes]``."""

    coordinates: List[List[List[float]]]
    type: str = "Polygon"


@dataclass
class Place:
    """A place row as seen by the search read path."""

    id: Any
    name: str
    type: str
    description: Optional[str] = None
    parent_id: Optional[Any] = None
    location: Optional[GeoPoint] = None
    bounds: Optional[GeoPolygon] = None

    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None

    created_by: Optional[Any] = None
    category: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    average_rating: Optional[float] = None
    rating_count: int = 0

    privacy: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Meters from the ordering reference point; None when not distance-ordered
    distance_m: Optional[float] = None


@dataclass
class SearchResult:
    """One page of places plus the total number of matches."""

    places: List[Place]
    total: int
    limit: int
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.places) < self.total
