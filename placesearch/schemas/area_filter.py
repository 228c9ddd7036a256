# placesearch/schemas/area_filter.py
"""
Geometric area constraints and the spatial context of a search.

Each area kind is a frozen dataclass; together they form the closed
``AreaFilter`` union. Construction never fails on malformed coordinates:
``problem()`` reports why a filter is inert, and the predicate builder
decides what to do with it.

Coordinates are WGS84, longitude first.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..core.exceptions import ValidationException


class AreaKind(str, Enum):
    CIRCLE = "circle"
    POLYGON = "polygon"
    BOUNDS = "bounds"
    REGION = "region"


class AreaMatch(str, Enum):
    """How multiple ``areas`` entries combine."""

    ANY_OF = "any_of"
    ALL_OF = "all_of"


def _freeze(value: Any) -> Any:
    """Turn nested lists into nested tuples so filters stay immutable."""
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _position_problem(position: Any, label: str) -> Optional[str]:
    if not _is_sequence(position) or len(position) != 2:
        return f"{label} must be a [lng, lat] pair"
    lng, lat = position
    if not (_is_number(lng) and _is_number(lat)):
        return f"{label} must contain finite numbers"
    if not -180 <= lng <= 180:
        return f"{label} longitude {lng} is outside [-180, 180]"
    if not -90 <= lat <= 90:
        return f"{label} latitude {lat} is outside [-90, 90]"
    return None


def _ring_problem(ring: Any, label: str) -> Optional[str]:
    if not _is_sequence(ring) or len(ring) < 4:
        return f"{label} needs at least 4 positions"
    for index, position in enumerate(ring):
        problem = _position_problem(position, f"{label} position {index}")
        if problem:
            return problem
    if tuple(ring[0]) != tuple(ring[-1]):
        return f"{label} is not closed"
    return None


@dataclass(frozen=True)
class CircleArea:
    """Points within ``radius_km`` kilometers of ``center``."""

    center: Any
    radius_km: Any = None
    name: Optional[str] = None

    kind: ClassVar[AreaKind] = AreaKind.CIRCLE

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", _freeze(self.center))

    @property
    def lng(self) -> float:
        return float(self.center[0])

    @property
    def lat(self) -> float:
        return float(self.center[1])

    def problem(self) -> Optional[str]:
        position_problem = _position_problem(self.center, "center")
        if position_problem:
            return position_problem
        if self.radius_km is None:
            return "radius is required"
        if not _is_number(self.radius_km):
            return "radius must be a finite number"
        if self.radius_km < 0:
            return "radius must not be negative"
        return None


@dataclass(frozen=True)
class PolygonArea:
    """Points inside a closed outer ring, minus any holes."""

    ring: Any
    holes: Any = ()
    name: Optional[str] = None

    kind: ClassVar[AreaKind] = AreaKind.POLYGON

    def __post_init__(self) -> None:
        object.__setattr__(self, "ring", _freeze(self.ring))
        object.__setattr__(self, "holes", _freeze(self.holes) or ())

    def problem(self) -> Optional[str]:
        ring_problem = _ring_problem(self.ring, "ring")
        if ring_problem:
            return ring_problem
        if not _is_sequence(self.holes):
            return "holes must be a list of rings"
        for index, hole in enumerate(self.holes):
            hole_problem = _ring_problem(hole, f"hole {index}")
            if hole_problem:
                return hole_problem
        return None

    def to_geojson(self) -> Dict[str, Any]:
        rings = [self.ring, *self.holes]
        return {
            "type": "Polygon",
            "coordinates": [
                [[float(lng), float(lat)] for lng, lat in ring] for ring in rings
            ],
        }


@dataclass(frozen=True)
class BoundsArea:
    """Axis-aligned rectangle ``(min_lng, min_lat, max_lng, max_lat)``."""

    coordinates: Any
    name: Optional[str] = None

    kind: ClassVar[AreaKind] = AreaKind.BOUNDS

    def __post_init__(self) -> None:
        object.__setattr__(self, "coordinates", _freeze(self.coordinates))

    @classmethod
    def from_corners(
        cls, corner_a: Sequence[float], corner_b: Sequence[float], name: Optional[str] = None
    ) -> "BoundsArea":
        """
        Build bounds from two opposite corners, western corner first.

        Latitudes may come in either order. Longitudes keep the corner order, so
        a box across the antimeridian fails problem().
        """
        if _position_problem(corner_a, "corner") or _position_problem(corner_b, "corner"):
            # Left as-is so problem() reports the malformed shape.
            return cls((corner_a, corner_b), name=name)
        (west, a_lat), (east, b_lat) = corner_a, corner_b
        return cls((west, min(a_lat, b_lat), east, max(a_lat, b_lat)), name=name)

    @property
    def envelope(self) -> Tuple[float, float, float, float]:
        min_lng, min_lat, max_lng, max_lat = self.coordinates
        return float(min_lng), float(min_lat), float(max_lng), float(max_lat)

    def problem(self) -> Optional[str]:
        coords = self.coordinates
        if not _is_sequence(coords) or len(coords) != 4:
            return "bounds need exactly 4 numbers (min_lng, min_lat, max_lng, max_lat)"
        if not all(_is_number(value) for value in coords):
            return "bounds must contain finite numbers"
        min_lng, min_lat, max_lng, max_lat = coords
        if not (-180 <= min_lng <= 180 and -180 <= max_lng <= 180):
            return "bounds longitude is outside [-180, 180]"
        if not (-90 <= min_lat <= 90 and -90 <= max_lat <= 90):
            return "bounds latitude is outside [-90, 90]"
        if min_lng > max_lng:
            return "bounds minimum exceeds maximum longitude (antimeridian crossing unsupported)"
        if min_lat > max_lat:
            return "bounds minimum exceeds maximum latitude"
        return None


@dataclass(frozen=True)
class RegionArea:
    """A named region such as a city, state or country."""

    name: Any

    kind: ClassVar[AreaKind] = AreaKind.REGION

    @property
    def normalized_name(self) -> str:
        return str(self.name).strip()

    def problem(self) -> Optional[str]:
        if not isinstance(self.name, str) or not self.name.strip():
            return "region name is empty"
        return None


AreaFilter = Union[CircleArea, PolygonArea, BoundsArea, RegionArea]

_AREA_TYPES = (CircleArea, PolygonArea, BoundsArea, RegionArea)


def _is_position_list(value: Any) -> bool:
    return _is_sequence(value) and bool(value) and all(_is_sequence(item) for item in value)


def parse_area_filter(payload: Union[AreaFilter, Mapping[str, Any]]) -> AreaFilter:
    """
    Build an AreaFilter from the ``{"type", "coordinates", "radius", "name"}`` shape.

    Circle radius is in kilometers. Polygon coordinates may be a bare ring or
    GeoJSON ``[ring, *holes]``; bounds may be four numbers or two corners.

    Raises:
        ValidationException: If the payload is not a mapping or the type is unknown
    """
    if isinstance(payload, _AREA_TYPES):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationException(
            "Area filter must be an object",
            code="INVALID_AREA_PAYLOAD",
            details={"received": type(payload).__name__},
        )

    area_type = str(payload.get("type") or "").strip().lower()
    coordinates = payload.get("coordinates")
    name = payload.get("name")

    if area_type == AreaKind.CIRCLE.value:
        radius = payload.get("radius", payload.get("radius_km"))
        return CircleArea(center=coordinates, radius_km=radius, name=name)

    if area_type == AreaKind.POLYGON.value:
        if _is_position_list(coordinates) and all(_is_position_list(r) for r in coordinates):
            return PolygonArea(ring=coordinates[0], holes=coordinates[1:], name=name)
        return PolygonArea(ring=coordinates, name=name)

    if area_type == AreaKind.BOUNDS.value:
        if _is_position_list(coordinates) and len(coordinates) == 2:
            return BoundsArea.from_corners(coordinates[0], coordinates[1], name=name)
        return BoundsArea(coordinates=coordinates, name=name)

    if area_type == AreaKind.REGION.value:
        return RegionArea(name=name)

    raise ValidationException(
        f"Unknown area type: {payload.get('type')!r}",
        code="UNKNOWN_AREA_TYPE",
        details={"type": payload.get("type")},
    )


def _parse_area_match(value: Any) -> Optional[AreaMatch]:
    if value is None or isinstance(value, AreaMatch):
        return value
    normalized = str(value).strip().lower().replace("-", "_")
    aliases = {"anyof": "any_of", "allof": "all_of", "or": "any_of", "and": "all_of"}
    normalized = aliases.get(normalized, normalized)
    try:
        return AreaMatch(normalized)
    except ValueError:
        raise ValidationException(
            f"Unknown areas_match value: {value!r}",
            code="INVALID_AREAS_MATCH",
            details={"areas_match": value, "allowed": [m.value for m in AreaMatch]},
        )


@dataclass
class SpatialSearchContext:
    """Spatial constraints for a single search call."""

    within: Optional[AreaFilter] = None
    near: Optional[AreaFilter] = None
    intersects: Optional[AreaFilter] = None
    areas: List[AreaFilter] = field(default_factory=list)
    areas_match: Optional[AreaMatch] = None

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> "SpatialSearchContext":
        if not payload:
            return cls()
        if not isinstance(payload, Mapping):
            raise ValidationException(
                "Spatial context must be an object",
                code="INVALID_SPATIAL_PAYLOAD",
                details={"received": type(payload).__name__},
            )

        def _optional(key: str) -> Optional[AreaFilter]:
            value = payload.get(key)
            return parse_area_filter(value) if value is not None else None

        return cls(
            within=_optional("within"),
            near=_optional("near"),
            intersects=_optional("intersects"),
            areas=[parse_area_filter(area) for area in payload.get("areas") or []],
            areas_match=_parse_area_match(payload.get("areas_match")),
        )

    @property
    def is_empty(self) -> bool:
        return self.within is None and self.near is None and self.intersects is None and not self.areas

    def reference_point(self) -> Optional[Tuple[float, float]]:
        """Center ``(lng, lat)`` of the first valid circle, used for distance ordering."""
        for area in (self.near, self.within, self.intersects, *self.areas):
            if isinstance(area, CircleArea) and area.problem() is None:
                return area.lng, area.lat
        return None
