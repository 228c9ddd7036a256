"""Unit tests for domain exceptions and failure classification helpers."""

from __future__ import annotations

from fastapi import HTTPException
import pytest

from placesearch.core.exceptions import (
    DomainException,
    InvalidAreaFilterException,
    RepositoryException,
    SearchCancelledException,
    SearchTimeoutException,
    ServiceException,
    ValidationException,
    is_db_pool_exhaustion,
    is_query_cancelled,
    is_statement_timeout,
)


class TestHttpConversion:
    @pytest.mark.parametrize(
        "exc, status_code",
        [
            (DomainException("boom"), 500),
            (ValidationException("bad input"), 400),
            (ServiceException("failed"), 500),
            (InvalidAreaFilterException("circle", "within", "radius is required"), 400),
            (SearchTimeoutException("page query", budget_ms=250), 504),
            (SearchCancelledException("count query"), 408),
        ],
    )
    def test_status_codes(self, exc: DomainException, status_code: int) -> None:
        http_exc = exc.to_http_exception()

        assert isinstance(http_exc, HTTPException)
        assert http_exc.status_code == status_code
        assert http_exc.detail["message"] == exc.message
        assert http_exc.detail["code"] == exc.code

    def test_default_code_is_class_name(self) -> None:
        assert ValidationException("x").code == "ValidationException"
        assert ValidationException("x").details == {}

    def test_invalid_area_details(self) -> None:
        exc = InvalidAreaFilterException("bounds", "intersects", "min must not exceed max")

        assert exc.code == "INVALID_AREA_FILTER"
        assert exc.details == {
            "kind": "bounds",
            "operation": "intersects",
            "reason": "min must not exceed max",
        }
        assert isinstance(exc, ValidationException)

    def test_timeout_details(self) -> None:
        exc = SearchTimeoutException("count query", budget_ms=500)

        assert exc.code == "SEARCH_TIMEOUT"
        assert exc.details == {"stage": "count query", "budget_ms": 500}
        assert "count query" in str(exc)

    def test_repository_exception_is_not_a_domain_exception(self) -> None:
        assert not isinstance(RepositoryException("x"), DomainException)


class TestClassification:
    def test_statement_timeout(self) -> None:
        assert is_statement_timeout(Exception("ERROR: canceling statement due to statement timeout"))
        assert is_statement_timeout(Exception("psycopg2.errors.QueryCanceled"))
        assert not is_statement_timeout(Exception("connection refused"))

    def test_user_cancel_is_not_a_timeout(self) -> None:
        error = Exception("(psycopg2.errors.QueryCanceled) canceling statement due to user request")

        assert is_query_cancelled(error)
        assert not is_statement_timeout(error)
        assert not is_query_cancelled(Exception("canceling statement due to statement timeout"))

    def test_pool_exhaustion(self) -> None:
        assert is_db_pool_exhaustion(Exception("QueuePool limit of size 5 overflow 10 reached"))
        assert is_db_pool_exhaustion(Exception("timeout waiting for connection"))
        assert not is_db_pool_exhaustion(Exception("syntax error"))
