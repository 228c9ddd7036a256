# placesearch/services/search/place_search_service.py
"""
Place search entry points.

Every operation composes one query from the attribute filters and the
spatial context, runs it off the event loop, maps the rows and resolves the
total number of matches. Calls are independent: a new composer per call and
no shared mutable search state.
"""
from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.exceptions import SearchCancelledException, ValidationException
from ...repositories.place_search_repository import PlaceSearchRepository
from ...repositories.region_boundary_repository import RegionBoundaryRepository
from ...schemas.area_filter import (
    AreaFilter,
    CircleArea,
    SpatialSearchContext,
    parse_area_filter,
)
from ...schemas.place import Place, SearchResult
from ...schemas.place_search import SearchFilters
from ..base import BaseService
from .metrics import record_count_query, record_search_metrics
from .predicates import InvalidAreaPolicy, RegionMatchMode, SpatialPredicateBuilder
from .query_composer import QueryComposer
from .request_budget import SearchDeadline
from .result_mapper import PlaceRowMapper

FiltersInput = Union[SearchFilters, Mapping[str, Any], None]
SpatialInput = Union[SpatialSearchContext, Mapping[str, Any], None]
AreaInput = Union[AreaFilter, Mapping[str, Any]]


class PlaceSearchService(BaseService):
    """
    Service for geospatial place search.

    Operations:
    - search: free text, attribute and spatial filters with pagination and total
    - get_nearby: places within a radius of a point
    - get_in_area / get_intersecting / get_within_distance: single-area lookups

    Async operations run the blocking work in a worker thread. Cancelling the
    awaiting task cancels the running statement on the server, stops the worker
    before its next statement and waits for it, so the session is idle once
    CancelledError reaches the caller. An expired deadline raises
    SearchTimeoutException before any statement is issued.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[PlaceSearchRepository] = None,
        region_repository: Optional[RegionBoundaryRepository] = None,
        mapper: Optional[PlaceRowMapper] = None,
        invalid_area_policy: Optional[Union[InvalidAreaPolicy, str]] = None,
        region_match: Optional[Union[RegionMatchMode, str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        super().__init__(db)
        self.repository = repository or PlaceSearchRepository(db)
        self.region_repository = region_repository or RegionBoundaryRepository(db)
        self.mapper = mapper or PlaceRowMapper()
        self.invalid_area_policy = InvalidAreaPolicy(
            invalid_area_policy or settings.search_invalid_area_policy
        )
        self.region_match = RegionMatchMode(region_match or settings.search_region_match)
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.search_timeout_ms
        self._resolved_region_mode: Optional[RegionMatchMode] = None

    # =========================================================================
    # Public operations
    # =========================================================================

    @BaseService.measure_operation("search")
    async def search(
        self,
        query: str = "",
        filters: FiltersInput = None,
        spatial: SpatialInput = None,
        *,
        deadline: Optional[SearchDeadline] = None,
    ) -> SearchResult:
        """
        Search places.

        Args:
            query: Free text matched against name and description; wins over filters.query
            filters: SearchFilters (or its dict form) for attributes and pagination
            spatial: SpatialSearchContext (or its payload form)
            deadline: Time budget; defaults to settings.search_timeout_ms

        Returns:
            SearchResult with the page of places and the total number of matches
        """
        return await self._run("search", query, filters, spatial, deadline, include_total=True)

    @BaseService.measure_operation("search_sync")
    def search_sync(
        self,
        query: str = "",
        filters: FiltersInput = None,
        spatial: SpatialInput = None,
        *,
        deadline: Optional[SearchDeadline] = None,
    ) -> SearchResult:
        """Blocking variant of search() for callers already off the event loop."""
        return self._search_blocking(
            "search_sync",
            query,
            filters,
            spatial,
            deadline or SearchDeadline.from_settings(self.timeout_ms),
            None,
            True,
        )

    @BaseService.measure_operation("get_nearby")
    async def get_nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float,
        limit: Optional[int] = None,
        *,
        viewer_id: Optional[str] = None,
        deadline: Optional[SearchDeadline] = None,
    ) -> List[Place]:
        """Places within ``radius_km`` kilometers of ``(lat, lng)``, nearest first."""
        context = SpatialSearchContext(near=CircleArea(center=(lng, lat), radius_km=radius_km))
        return await self._lookup("get_nearby", context, limit, viewer_id, deadline)

    @BaseService.measure_operation("get_in_area")
    async def get_in_area(
        self,
        area: AreaInput,
        limit: Optional[int] = None,
        *,
        viewer_id: Optional[str] = None,
        deadline: Optional[SearchDeadline] = None,
    ) -> List[Place]:
        """Places located inside ``area``."""
        context = SpatialSearchContext(within=parse_area_filter(area))
        return await self._lookup("get_in_area", context, limit, viewer_id, deadline)

    @BaseService.measure_operation("get_intersecting")
    async def get_intersecting(
        self,
        area: AreaInput,
        limit: Optional[int] = None,
        *,
        viewer_id: Optional[str] = None,
        deadline: Optional[SearchDeadline] = None,
    ) -> List[Place]:
        """Places whose bounds (or point, without bounds) share any point with ``area``."""
        context = SpatialSearchContext(intersects=parse_area_filter(area))
        return await self._lookup("get_intersecting", context, limit, viewer_id, deadline)

    @BaseService.measure_operation("get_within_distance")
    async def get_within_distance(
        self,
        area: AreaInput,
        limit: Optional[int] = None,
        *,
        viewer_id: Optional[str] = None,
        deadline: Optional[SearchDeadline] = None,
    ) -> List[Place]:
        """Places within the radius of a circle ``area``, nearest first."""
        context = SpatialSearchContext(near=parse_area_filter(area))
        return await self._lookup("get_within_distance", context, limit, viewer_id, deadline)

    # =========================================================================
    # Execution
    # =========================================================================

    async def _lookup(
        self,
        operation: str,
        context: SpatialSearchContext,
        limit: Optional[int],
        viewer_id: Optional[str],
        deadline: Optional[SearchDeadline],
    ) -> List[Place]:
        filters = self._coerce_filters(
            {
                "limit": settings.search_area_lookup_limit if limit is None else limit,
                "viewer_id": viewer_id,
            }
        )
        result = await self._run(operation, "", filters, context, deadline, include_total=False)
        return result.places

    async def _run(
        self,
        operation: str,
        query: str,
        filters: FiltersInput,
        spatial: SpatialInput,
        deadline: Optional[SearchDeadline],
        *,
        include_total: bool,
    ) -> SearchResult:
        deadline = deadline or SearchDeadline.from_settings(self.timeout_ms)
        cancel_event = threading.Event()
        worker = asyncio.ensure_future(
            asyncio.to_thread(
                self._search_blocking,
                operation,
                query,
                filters,
                spatial,
                deadline,
                cancel_event,
                include_total,
            )
        )
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            cancel_event.set()
            self.repository.cancel_running_statement()
            self.logger.info(f"Place search '{operation}' cancelled by caller")
            await self._wait_for_worker(operation, worker)
            raise

    async def _wait_for_worker(
        self, operation: str, worker: "asyncio.Future[SearchResult]"
    ) -> None:
        """Block until the worker thread no longer uses the session."""
        await asyncio.wait({worker})
        error = None if worker.cancelled() else worker.exception()
        if error is not None:
            self.logger.debug(f"Cancelled place search '{operation}' stopped with: {error!r}")

    def _search_blocking(
        self,
        operation: str,
        query: str,
        filters: FiltersInput,
        spatial: SpatialInput,
        deadline: Optional[SearchDeadline],
        cancel_event: Optional[threading.Event],
        include_total: bool,
    ) -> SearchResult:
        start = time.perf_counter()
        search_filters = self._coerce_filters(filters)
        context = self._coerce_context(spatial)

        self._checkpoint("query composition", deadline, cancel_event)
        builder = SpatialPredicateBuilder(self.invalid_area_policy, self._region_mode(context))
        composer = QueryComposer(builder).add_filters(search_filters, query).add_spatial_context(context)
        page_query = composer.build()

        timeout_ms = self._checkpoint("page query", deadline, cancel_event)
        rows = self.repository.fetch_rows(page_query, timeout_ms)
        places = self.mapper.map_rows(rows)

        if include_total:
            total = self._resolve_total(composer, places, deadline, cancel_event)
        else:
            total = composer.offset + len(places)

        latency_ms = (time.perf_counter() - start) * 1000
        record_search_metrics(operation, latency_ms, len(places), not context.is_empty)
        self.logger.debug(
            f"Place search '{operation}' returned {len(places)} of {total} in {latency_ms:.1f}ms"
        )
        return SearchResult(
            places=places,
            total=total,
            limit=search_filters.limit,
            offset=search_filters.offset,
        )

    def _resolve_total(
        self,
        composer: QueryComposer,
        places: List[Place],
        deadline: Optional[SearchDeadline],
        cancel_event: Optional[threading.Event],
    ) -> int:
        """Total matches before pagination; the count query runs unless the page proves it."""
        limit = composer.limit or 0
        if places and len(places) < limit:
            record_count_query(executed=False)
            return composer.offset + len(places)
        if not places and composer.offset == 0:
            record_count_query(executed=False)
            return 0

        timeout_ms = self._checkpoint("count query", deadline, cancel_event)
        with self.measure_operation_context("count_query"):
            total = self.repository.count(composer.build_count(), timeout_ms)
        record_count_query(executed=True)
        return total

    @staticmethod
    def _checkpoint(
        stage: str,
        deadline: Optional[SearchDeadline],
        cancel_event: Optional[threading.Event],
    ) -> Optional[int]:
        """Stop before ``stage`` if cancelled or out of time; return the remaining budget."""
        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelledException(stage)
        if deadline is None:
            return None
        return deadline.ensure_remaining(stage)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _region_mode(self, context: SpatialSearchContext) -> RegionMatchMode:
        if self.region_match is not RegionMatchMode.AUTO:
            return self.region_match
        if self._resolved_region_mode is None:
            if context.is_empty:
                # Nothing to match against; defer the lookup to a spatial search
                return RegionMatchMode.TEXT
            has_boundary = self.region_repository.table_has_boundary()
            self._resolved_region_mode = (
                RegionMatchMode.BOUNDARY if has_boundary else RegionMatchMode.TEXT
            )
            self.logger.info(
                f"Region matching resolved to '{self._resolved_region_mode.value}' "
                f"(region_boundaries.boundary present: {has_boundary})"
            )
        return self._resolved_region_mode

    @staticmethod
    def _coerce_filters(filters: FiltersInput) -> SearchFilters:
        if isinstance(filters, SearchFilters):
            return filters
        try:
            return SearchFilters.model_validate(dict(filters or {}))
        except ValidationError as e:
            raise ValidationException(
                "Invalid search filters",
                code="INVALID_SEARCH_FILTERS",
                details={"errors": e.errors(include_url=False)},
            ) from e

    @staticmethod
    def _coerce_context(spatial: SpatialInput) -> SpatialSearchContext:
        if isinstance(spatial, SpatialSearchContext):
            return spatial
        return SpatialSearchContext.from_payload(spatial)
