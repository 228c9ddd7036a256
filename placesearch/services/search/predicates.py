# placesearch/services/search/predicates.py
"""
Spatial predicate fragments for place search.

A fragment is SQL text plus its ordered arguments. Markers are relative
(``$1`` is the fragment's first argument); the query composer renumbers them
into global bind names. Geometry and distances are always arguments, never
part of the SQL text.

All column references use the ``p`` alias of the ``places`` table.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import json
import logging
import re
from typing import Any, Iterable, List, Tuple

from typing_extensions import assert_never

from ...core.exceptions import InvalidAreaFilterException
from ...schemas.area_filter import (
    AreaFilter,
    AreaKind,
    BoundsArea,
    CircleArea,
    PolygonArea,
    RegionArea,
)
from .metrics import record_skipped_area

logger = logging.getLogger(__name__)

METERS_PER_KILOMETER = 1000.0

_MARKER_RE = re.compile(r"\$(\d+)")
_MARKER_CAST_RE = re.compile(r"\$\d+::")

_POINT_SQL = "ST_SetSRID(ST_MakePoint($1, $2), 4326)::geography"
_POLYGON_SQL = "ST_SetSRID(ST_GeomFromGeoJSON(CAST($1 AS text)), 4326)"
_ENVELOPE_SQL = "ST_MakeEnvelope($1, $2, $3, $4, 4326)"
_PLACE_SHAPE_SQL = "COALESCE(p.bounds, p.location)"


class SpatialOperation(str, Enum):
    WITHIN = "within"
    NEAR = "near"
    INTERSECTS = "intersects"


class InvalidAreaPolicy(str, Enum):
    """What happens to an area filter that cannot produce a predicate."""

    SKIP = "skip"
    REJECT = "reject"


class RegionMatchMode(str, Enum):
    TEXT = "text"
    BOUNDARY = "boundary"
    AUTO = "auto"


# Operations that only make sense for some shapes
_SUPPORTED_KINDS = {
    SpatialOperation.WITHIN: frozenset(AreaKind),
    SpatialOperation.NEAR: frozenset({AreaKind.CIRCLE}),
    SpatialOperation.INTERSECTS: frozenset(AreaKind),
}


def km_to_meters(radius_km: float) -> float:
    """Convert a radius in kilometers to the meters PostGIS geography expects."""
    return float(radius_km) * METERS_PER_KILOMETER


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(value: str) -> str:
    return f"%{escape_like(value)}%"


@dataclass(frozen=True)
class PredicateFragment:
    """SQL condition with relative ``$n`` markers and its arguments."""

    sql: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        if _MARKER_CAST_RE.search(self.sql):
            raise ValueError(f"Marker followed by '::' cannot be bound: {self.sql!r}")
        used = {int(index) for index in _MARKER_RE.findall(self.sql)}
        expected = set(range(1, len(self.args) + 1))
        if used != expected:
            raise ValueError(
                f"Fragment markers {sorted(used)} do not match {len(self.args)} argument(s)"
            )

    @classmethod
    def empty(cls) -> "PredicateFragment":
        return cls("", ())

    @property
    def is_empty(self) -> bool:
        return not self.sql.strip()

    def shifted_sql(self, offset: int) -> str:
        """SQL with every marker moved up by ``offset``."""
        if offset == 0:
            return self.sql
        return _MARKER_RE.sub(lambda m: f"${int(m.group(1)) + offset}", self.sql)

    def bound_sql(self, offset: int = 0) -> str:
        """SQL with markers rendered as SQLAlchemy ``:pN`` binds, numbered from ``offset + 1``."""
        return _MARKER_RE.sub(lambda m: f":p{int(m.group(1)) + offset}", self.sql)


def join_fragments(fragments: Iterable[PredicateFragment], operator: str = "AND") -> PredicateFragment:
    """Combine fragments with AND/OR into one fragment, skipping empty ones."""
    parts: List[str] = []
    args: List[Any] = []
    for fragment in fragments:
        if fragment.is_empty:
            continue
        parts.append(fragment.shifted_sql(len(args)))
        args.extend(fragment.args)
    if not parts:
        return PredicateFragment.empty()
    if len(parts) == 1:
        return PredicateFragment(parts[0], tuple(args))
    joined = f" {operator} ".join(f"({part})" for part in parts)
    return PredicateFragment(f"({joined})", tuple(args))


def _region_text_sql(marker: str) -> str:
    return f"(p.city ILIKE {marker} OR p.state ILIKE {marker} OR p.country ILIKE {marker})"


class SpatialPredicateBuilder:
    """
    Build the predicate for one ``(operation, area)`` pair.

    Supported combinations:
    - within: circle (buffered containment), polygon, bounds, region
    - near: circle only (distance threshold)
    - intersects: circle, polygon, bounds against the place bounds or point, region

    Invalid or unsupported filters are skipped with a warning, or raise
    InvalidAreaFilterException when the policy is REJECT.
    """

    def __init__(
        self,
        policy: InvalidAreaPolicy = InvalidAreaPolicy.SKIP,
        region_mode: RegionMatchMode = RegionMatchMode.TEXT,
    ) -> None:
        self.policy = InvalidAreaPolicy(policy)
        self.region_mode = RegionMatchMode(region_mode)
        if self.region_mode is RegionMatchMode.AUTO:
            raise ValueError("RegionMatchMode.AUTO must be resolved before building predicates")

    def build(self, operation: SpatialOperation, area: AreaFilter) -> PredicateFragment:
        problem = area.problem()
        if problem is None and area.kind not in _SUPPORTED_KINDS[operation]:
            problem = f"{area.kind.value} areas cannot be used with '{operation.value}'"
        if problem is not None:
            return self._invalid(operation, area, problem)

        if isinstance(area, CircleArea):
            return self._circle(operation, area)
        elif isinstance(area, PolygonArea):
            return self._shape(operation, _POLYGON_SQL, (json.dumps(area.to_geojson()),))
        elif isinstance(area, BoundsArea):
            return self._shape(operation, _ENVELOPE_SQL, area.envelope)
        elif isinstance(area, RegionArea):
            return self._region(operation, area)
        else:
            assert_never(area)

    def _invalid(
        self, operation: SpatialOperation, area: AreaFilter, problem: str
    ) -> PredicateFragment:
        if self.policy is InvalidAreaPolicy.REJECT:
            raise InvalidAreaFilterException(area.kind.value, operation.value, problem)
        logger.warning(
            f"Skipping {area.kind.value} area filter for '{operation.value}': {problem}"
        )
        record_skipped_area(operation.value, area.kind.value)
        return PredicateFragment.empty()

    def _circle(self, operation: SpatialOperation, area: CircleArea) -> PredicateFragment:
        meters = km_to_meters(area.radius_km)
        args = (area.lng, area.lat, meters)
        if operation is SpatialOperation.WITHIN:
            if meters > 0:
                sql = f"ST_Covers(ST_Buffer({_POINT_SQL}, $3), p.location)"
            else:
                # A zero buffer is empty; match the exact point instead
                sql = f"ST_DWithin(p.location, {_POINT_SQL}, $3)"
        elif operation is SpatialOperation.NEAR:
            sql = f"ST_DWithin(p.location, {_POINT_SQL}, $3)"
        elif operation is SpatialOperation.INTERSECTS:
            sql = f"ST_DWithin({_PLACE_SHAPE_SQL}, {_POINT_SQL}, $3)"
        else:
            assert_never(operation)
        return PredicateFragment(sql, args)

    def _shape(
        self, operation: SpatialOperation, shape_sql: str, args: Tuple[Any, ...]
    ) -> PredicateFragment:
        if operation is SpatialOperation.WITHIN:
            sql = f"ST_Within(p.location::geometry, {shape_sql})"
        elif operation is SpatialOperation.INTERSECTS:
            sql = f"ST_Intersects({_PLACE_SHAPE_SQL}::geometry, {shape_sql})"
        else:
            # Filtered out by _SUPPORTED_KINDS
            raise ValueError(f"Unsupported operation for shape: {operation.value}")
        return PredicateFragment(sql, args)

    def _region(self, operation: SpatialOperation, area: RegionArea) -> PredicateFragment:
        name = area.normalized_name
        if self.region_mode is RegionMatchMode.TEXT:
            return PredicateFragment(_region_text_sql("$1"), (contains_pattern(name),))

        if operation is SpatialOperation.INTERSECTS:
            spatial = f"ST_Intersects(rb.boundary, {_PLACE_SHAPE_SQL}::geometry)"
        else:
            spatial = "ST_Covers(rb.boundary, p.location::geometry)"
        named_boundary = (
            "SELECT 1 FROM region_boundaries rb "
            "WHERE rb.boundary IS NOT NULL AND LOWER(rb.region_name) = LOWER($1)"
        )
        sql = (
            f"(EXISTS ({named_boundary} AND {spatial}) "
            f"OR (NOT EXISTS ({named_boundary}) AND {_region_text_sql('$2')}))"
        )
        return PredicateFragment(sql, (name, contains_pattern(name)))

