"""
Prometheus registry for the place search engine.

Every placesearch series registers on ``REGISTRY`` so an embedding service can
expose them next to (or separately from) its own default registry. Timings per
service call are fed by ``BaseService.measure_operation``; search-specific
series live in ``placesearch.services.search.metrics``.
"""

from typing import Optional, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

SERVICE_OPERATION_SECONDS = Histogram(
    "placesearch_service_operation_duration_seconds",
    "Duration of place search service calls in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

SERVICE_OPERATIONS = Counter(
    "placesearch_service_operations_total",
    "Place search service calls by outcome",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

SERVICE_ERRORS = Counter(
    "placesearch_service_errors_total",
    "Failed place search service calls by exception type",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Records service call timings and renders the placesearch registry."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.registry = registry

    def record_service_operation(
        self,
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        SERVICE_OPERATION_SECONDS.labels(service=service, operation=operation).observe(duration)
        SERVICE_OPERATIONS.labels(service=service, operation=operation, status=status).inc()
        if status == "error":
            SERVICE_ERRORS.labels(
                service=service, operation=operation, error_type=error_type or "unknown"
            ).inc()

    def exposition(self) -> Tuple[bytes, str]:
        """Text exposition of the registry and its content type, for a /metrics route."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
