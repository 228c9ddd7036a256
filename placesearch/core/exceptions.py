# placesearch/core/exceptions.py
"""
Exceptions raised by the place search engine.

Domain exceptions carry a stable ``code`` and structured ``details`` and know
their HTTP status, so a FastAPI layer can return ``exc.to_http_exception()``
without a mapping table of its own.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={"message": self.message, "code": self.code, "details": self.details},
        )


class ValidationException(DomainException):
    """Search input that cannot be turned into a query."""

    status_code = status.HTTP_400_BAD_REQUEST


class ServiceException(DomainException):
    """A search that was accepted but could not be completed."""


class InvalidAreaFilterException(ValidationException):
    """Malformed or unsupported area filter under the reject policy."""

    def __init__(self, kind: str, operation: str, reason: str):
        super().__init__(
            message=f"Invalid {kind} area for '{operation}': {reason}",
            code="INVALID_AREA_FILTER",
            details={"kind": kind, "operation": operation, "reason": reason},
        )


class SearchTimeoutException(ServiceException):
    """The search deadline expired or PostgreSQL cancelled a statement on timeout."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT

    def __init__(self, stage: str, budget_ms: Optional[int] = None):
        super().__init__(
            message=f"Place search timed out during {stage}",
            code="SEARCH_TIMEOUT",
            details={"stage": stage, "budget_ms": budget_ms},
        )


class SearchCancelledException(ServiceException):
    """Raised inside the worker thread when the caller abandoned the search."""

    status_code = status.HTTP_408_REQUEST_TIMEOUT

    def __init__(self, stage: str):
        super().__init__(
            message=f"Place search cancelled before {stage}",
            code="SEARCH_CANCELLED",
            details={"stage": stage},
        )


class RepositoryException(Exception):
    """A store or connection failure while running a search query."""


def is_db_pool_exhaustion(exc: Exception) -> bool:
    """True when the error means no pooled connection became available in time."""
    error_str = str(exc).lower()
    return "queuepool" in error_str or (
        "timeout" in error_str and ("connection" in error_str or "pool" in error_str)
    )


def is_statement_timeout(exc: Exception) -> bool:
    """True when PostgreSQL cancelled a statement because of statement_timeout."""
    error_str = str(exc).lower()
    return "canceling statement due to statement timeout" in error_str or (
        "querycanceled" in error_str and not is_query_cancelled(exc)
    )


def is_query_cancelled(exc: Exception) -> bool:
    """True when PostgreSQL cancelled a statement on a client cancel request."""
    return "canceling statement due to user request" in str(exc).lower()
