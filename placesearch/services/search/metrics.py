# placesearch/services/search/metrics.py
"""
Prometheus metrics for place search.

Provides observability for:
- Search latency by operation
- Result volume and zero-result searches
- Skipped area filters and geometry decode failures
- Count query usage
"""
from __future__ import annotations

from prometheus_client import Counter, Histogram

from placesearch.monitoring.prometheus_metrics import REGISTRY

SEARCH_LATENCY = Histogram(
    "placesearch_search_latency_ms",
    "Search latency in milliseconds",
    ["operation"],
    registry=REGISTRY,
    buckets=[5, 10, 25, 50, 100, 200, 500, 1000, 2000, 5000],
)

SEARCH_RESULT_COUNT = Histogram(
    "placesearch_search_result_count",
    "Number of places returned per page",
    registry=REGISTRY,
    buckets=[0, 1, 5, 10, 20, 50, 100],
)

SEARCH_ZERO_RESULTS = Counter(
    "placesearch_search_zero_results_total",
    "Count of searches returning zero results",
    ["has_spatial"],
    registry=REGISTRY,
)

SKIPPED_AREA_FILTERS = Counter(
    "placesearch_skipped_area_filters_total",
    "Area filters dropped because they were malformed or unsupported for the operation",
    ["operation", "kind"],
    registry=REGISTRY,
)

GEOMETRY_DECODE_FAILURES = Counter(
    "placesearch_geometry_decode_failures_total",
    "Rows whose geometry payload could not be decoded",
    ["column"],
    registry=REGISTRY,
)

COUNT_QUERIES = Counter(
    "placesearch_count_queries_total",
    "Total-count resolution by outcome",
    ["outcome"],  # executed | skipped
    registry=REGISTRY,
)


def record_search_metrics(
    operation: str,
    latency_ms: float,
    result_count: int,
    has_spatial: bool,
) -> None:
    """Record all metrics for a completed search."""
    SEARCH_LATENCY.labels(operation=operation).observe(latency_ms)
    SEARCH_RESULT_COUNT.observe(result_count)
    if result_count == 0:
        SEARCH_ZERO_RESULTS.labels(has_spatial="true" if has_spatial else "false").inc()


def record_skipped_area(operation: str, kind: str) -> None:
    """Record an area filter dropped by the skip policy."""
    SKIPPED_AREA_FILTERS.labels(operation=operation, kind=kind).inc()


def record_geometry_decode_failure(column: str) -> None:
    """Record a geometry payload that failed to decode."""
    GEOMETRY_DECODE_FAILURES.labels(column=column).inc()


def record_count_query(executed: bool) -> None:
    """Record whether the total came from a count query or from the page itself."""
    COUNT_QUERIES.labels(outcome="executed" if executed else "skipped").inc()


__all__ = [
    "SEARCH_LATENCY",
    "SEARCH_RESULT_COUNT",
    "SEARCH_ZERO_RESULTS",
    "SKIPPED_AREA_FILTERS",
    "GEOMETRY_DECODE_FAILURES",
    "COUNT_QUERIES",
    "record_search_metrics",
    "record_skipped_area",
    "record_geometry_decode_failure",
    "record_count_query",
]
