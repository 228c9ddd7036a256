# placesearch/services/search/query_composer.py
"""
Compose one parameterized place search from filter fragments.

Fragments are accumulated in a fixed order, then a single renumbering pass
turns their relative ``$n`` markers into ``:pN`` binds and concatenates the
arguments in the same order. The same WHERE clause backs the page query and
the count query.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...core.exceptions import ValidationException
from ...schemas.area_filter import AreaMatch, SpatialSearchContext
from ...schemas.place_search import SearchFilters
from .predicates import (
    PredicateFragment,
    SpatialOperation,
    SpatialPredicateBuilder,
    contains_pattern,
    join_fragments,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"
PUBLIC_PRIVACY = "public"

PLACE_COLUMNS = """
    p.id, p.name, p.description, p.type, p.parent_id,
    ST_AsGeoJSON(p.location) AS location,
    ST_AsGeoJSON(p.bounds) AS bounds,
    p.street_address, p.city, p.state, p.country, p.postal_code,
    p.created_by, p.category, p.tags, p.average_rating, p.rating_count,
    p.privacy, p.status, p.created_at, p.updated_at"""

_DISTANCE_SQL = "ST_Distance(p.location, ST_SetSRID(ST_MakePoint($1, $2), 4326)::geography)"


@dataclass(frozen=True)
class ComposedQuery:
    """Executable SQL with ``:pN`` binds and the matching argument tuple."""

    sql: str
    args: Tuple[Any, ...]

    @property
    def params(self) -> Dict[str, Any]:
        return {f"p{index}": value for index, value in enumerate(self.args, start=1)}


def _render(fragments: Sequence[PredicateFragment]) -> Tuple[List[str], List[Any]]:
    """Renumber relative markers into global ``:pN`` binds in one pass."""
    rendered: List[str] = []
    args: List[Any] = []
    for fragment in fragments:
        rendered.append(fragment.bound_sql(len(args)))
        args.extend(fragment.args)
    return rendered, args


class QueryComposer:
    """
    Accumulate search predicates for a single call.

    Order: status and visibility, text, category, tags, place attributes,
    within, near, intersects, areas. A composer is not reusable across calls.
    """

    def __init__(self, predicate_builder: SpatialPredicateBuilder) -> None:
        self.predicate_builder = predicate_builder
        self._where: List[PredicateFragment] = []
        self._reference_point: Optional[Tuple[float, float]] = None
        self._limit: Optional[int] = None
        self._offset = 0

    def add(self, fragment: PredicateFragment) -> "QueryComposer":
        if not fragment.is_empty:
            self._where.append(fragment)
        return self

    def add_visibility(self, viewer_id: Optional[str] = None) -> "QueryComposer":
        self.add(PredicateFragment("p.status = $1", (ACTIVE_STATUS,)))
        if viewer_id:
            return self.add(
                PredicateFragment("(p.privacy = $1 OR p.created_by = $2)", (PUBLIC_PRIVACY, viewer_id))
            )
        return self.add(PredicateFragment("p.privacy = $1", (PUBLIC_PRIVACY,)))

    def add_text_search(self, query: Optional[str]) -> "QueryComposer":
        text = (query or "").strip()
        if not text:
            return self
        return self.add(
            PredicateFragment("(p.name ILIKE $1 OR p.description ILIKE $1)", (contains_pattern(text),))
        )

    def add_categories(self, categories: Sequence[str]) -> "QueryComposer":
        if not categories:
            return self
        return self.add(PredicateFragment("p.category && CAST($1 AS text[])", (list(categories),)))

    def add_tags(self, tags: Sequence[str]) -> "QueryComposer":
        if not tags:
            return self
        return self.add(PredicateFragment("p.tags && CAST($1 AS text[])", (list(tags),)))

    def add_attributes(self, filters: SearchFilters) -> "QueryComposer":
        if filters.place_type:
            self.add(PredicateFragment("p.type = $1", (filters.place_type,)))
        if filters.city:
            self.add(PredicateFragment("p.city ILIKE $1", (contains_pattern(filters.city),)))
        if filters.country:
            self.add(PredicateFragment("p.country ILIKE $1", (contains_pattern(filters.country),)))
        if filters.creator_id:
            self.add(PredicateFragment("p.created_by = $1", (filters.creator_id,)))
        if filters.min_rating is not None:
            self.add(PredicateFragment("p.average_rating >= $1", (float(filters.min_rating),)))
        return self

    def add_filters(self, filters: SearchFilters, query: Optional[str] = None) -> "QueryComposer":
        """Add every non-spatial filter; an explicit ``query`` wins over ``filters.query``."""
        self.add_visibility(filters.viewer_id)
        self.add_text_search(query if query and query.strip() else filters.query)
        self.add_categories(filters.category)
        self.add_tags(filters.tags)
        self.add_attributes(filters)
        return self.paginate(filters.limit, filters.offset)

    def add_spatial_context(self, context: SpatialSearchContext) -> "QueryComposer":
        build = self.predicate_builder.build
        if context.within is not None:
            self.add(build(SpatialOperation.WITHIN, context.within))
        if context.near is not None:
            self.add(build(SpatialOperation.NEAR, context.near))
        if context.intersects is not None:
            self.add(build(SpatialOperation.INTERSECTS, context.intersects))

        if context.areas:
            if len(context.areas) > 1 and context.areas_match is None:
                raise ValidationException(
                    "areas_match is required when more than one area is given",
                    code="AREAS_MATCH_REQUIRED",
                    details={"areas": len(context.areas), "allowed": [m.value for m in AreaMatch]},
                )
            area_fragments = [build(SpatialOperation.WITHIN, area) for area in context.areas]
            operator = "OR" if context.areas_match is AreaMatch.ANY_OF else "AND"
            self.add(join_fragments(area_fragments, operator))

        self._reference_point = context.reference_point()
        return self

    def paginate(self, limit: int, offset: int = 0) -> "QueryComposer":
        if limit < 1 or offset < 0:
            raise ValidationException(
                "limit must be positive and offset non-negative",
                code="INVALID_PAGINATION",
                details={"limit": limit, "offset": offset},
            )
        self._limit = limit
        self._offset = offset
        return self

    @property
    def reference_point(self) -> Optional[Tuple[float, float]]:
        return self._reference_point

    @property
    def limit(self) -> Optional[int]:
        return self._limit

    @property
    def offset(self) -> int:
        return self._offset

    def build(self) -> ComposedQuery:
        """Page query: filters, distance or recency ordering, then LIMIT/OFFSET."""
        if self._limit is None:
            raise ValueError("paginate() must be called before build()")

        fragments: List[PredicateFragment] = []
        if self._reference_point is not None:
            fragments.append(PredicateFragment(_DISTANCE_SQL, self._reference_point))
        fragments.extend(self._where)
        fragments.append(PredicateFragment("$1", (self._limit,)))
        fragments.append(PredicateFragment("$1", (self._offset,)))
        rendered, args = _render(fragments)

        if self._reference_point is not None:
            distance_sql, where_sql = rendered[0], rendered[1:-2]
            order_by = "distance_m ASC NULLS LAST, p.id"
        else:
            distance_sql, where_sql = "CAST(NULL AS double precision)", rendered[:-2]
            order_by = "p.created_at DESC, p.id"
        limit_sql, offset_sql = rendered[-2], rendered[-1]

        sql = (
            f"SELECT {PLACE_COLUMNS},\n    {distance_sql} AS distance_m\n"
            f"FROM places p\n"
            f"{self._where_clause(where_sql)}"
            f"ORDER BY {order_by}\n"
            f"LIMIT {limit_sql} OFFSET {offset_sql}"
        )
        logger.debug(f"Composed place search: {len(self._where)} predicates, {len(args)} binds")
        return ComposedQuery(sql=sql, args=tuple(args))

    def build_count(self) -> ComposedQuery:
        """Count of every match: same WHERE, no ordering or pagination."""
        rendered, args = _render(self._where)
        sql = f"SELECT COUNT(*) AS total\nFROM places p\n{self._where_clause(rendered)}".rstrip()
        return ComposedQuery(sql=sql, args=tuple(args))

    @staticmethod
    def _where_clause(conditions: Sequence[str]) -> str:
        if not conditions:
            return ""
        return "WHERE " + "\n  AND ".join(conditions) + "\n"
