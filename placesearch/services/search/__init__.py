# placesearch/services/search/__init__.py
"""
Place search: spatial predicates, query composition, execution and mapping.
"""
from placesearch.services.search.place_search_service import PlaceSearchService
from placesearch.services.search.predicates import (
    InvalidAreaPolicy,
    PredicateFragment,
    RegionMatchMode,
    SpatialOperation,
    SpatialPredicateBuilder,
    join_fragments,
    km_to_meters,
)
from placesearch.services.search.query_composer import ComposedQuery, QueryComposer
from placesearch.services.search.request_budget import SearchDeadline
from placesearch.services.search.result_mapper import PlaceRowMapper

__all__ = [
    "ComposedQuery",
    "InvalidAreaPolicy",
    "PlaceRowMapper",
    "PlaceSearchService",
    "PredicateFragment",
    "QueryComposer",
    "RegionMatchMode",
    "SearchDeadline",
    "SpatialOperation",
    "SpatialPredicateBuilder",
    "join_fragments",
    "km_to_meters",
]
