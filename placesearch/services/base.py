# placesearch/services/base.py
"""
Base service for the search engine.

Services hold the caller's session and a class-named logger, and time their
public operations into the placesearch Prometheus registry.
"""

import asyncio
from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.orm import Session

from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

SLOW_OPERATION_SECONDS = 1.0

F = TypeVar("F", bound=Callable[..., Any])


class _Timing:
    """Outcome of one measured call; recorded once when the call finishes."""

    def __init__(self, service: Any, operation_name: str) -> None:
        self.service = service
        self.operation_name = operation_name
        self.error_type: Optional[str] = None
        self.start = time.perf_counter()

    def failed(self, exc: BaseException) -> None:
        self.error_type = type(exc).__name__

    def finish(self) -> None:
        elapsed = time.perf_counter() - self.start
        if elapsed > SLOW_OPERATION_SECONDS:
            self.service.logger.warning(
                f"Slow operation detected: {self.operation_name} took {elapsed:.2f}s"
            )
        try:
            prometheus_metrics.record_service_operation(
                service=self.service.__class__.__name__,
                operation=self.operation_name,
                duration=elapsed,
                status="error" if self.error_type else "success",
                error_type=self.error_type,
            )
        except Exception as e:
            # Metrics collection never breaks the operation
            logger.debug(f"Failed to record metrics for {self.operation_name}: {e}")


class BaseService:
    """
    Base class for search services.

    Provides:
    - The caller's database session as ``self.db``
    - A logger named after the concrete service
    - Timing of operations via ``measure_operation``
    """

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator recording duration and outcome of a service method.

        Works on plain and ``async`` methods. A cancelled coroutine is recorded
        as an error of type ``CancelledError`` before the cancellation propagates.

        Usage:
            @BaseService.measure_operation("search")
            async def search(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            if asyncio.iscoroutinefunction(func):

                @wraps(func)
                async def async_wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                    timing = _Timing(self, operation_name)
                    try:
                        return await func(self, *args, **kwargs)
                    except (Exception, asyncio.CancelledError) as e:
                        timing.failed(e)
                        raise
                    finally:
                        timing.finish()

                return cast(F, async_wrapper)

            @wraps(func)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                timing = _Timing(self, operation_name)
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    timing.failed(e)
                    raise
                finally:
                    timing.finish()

            return cast(F, wrapper)

        return decorator

    @contextmanager
    def measure_operation_context(self, operation_name: str) -> Iterator[None]:
        """
        Time a block inside an operation.

        Usage:
            with self.measure_operation_context("count_query"):
                total = self.repository.count(query)
        """
        timing = _Timing(self, operation_name)
        try:
            yield
        except Exception as e:
            timing.failed(e)
            raise
        finally:
            timing.finish()
