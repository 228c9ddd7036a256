"""Unit tests for SearchDeadline."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from placesearch.core.exceptions import SearchTimeoutException
from placesearch.services.search.request_budget import SearchDeadline

CLOCK = "placesearch.services.search.request_budget.time.perf_counter"


class TestSearchDeadline:
    def test_from_settings_none_means_unbounded(self) -> None:
        assert SearchDeadline.from_settings(None) is None

    def test_from_settings(self) -> None:
        deadline = SearchDeadline.from_settings(500)
        assert deadline is not None
        assert deadline.total_ms == 500

    def test_remaining_decreases_with_elapsed_time(self) -> None:
        deadline = SearchDeadline(total_ms=1000, start_time=10.0)

        with patch(CLOCK, return_value=10.25):
            assert deadline.elapsed_ms == 250
            assert deadline.remaining_ms == 750
            assert not deadline.is_expired()
            assert deadline.ensure_remaining("page query") == 750

    def test_expired_raises_with_stage(self) -> None:
        deadline = SearchDeadline(total_ms=100, start_time=10.0)

        with patch(CLOCK, return_value=10.5):
            assert deadline.remaining_ms == 0
            assert deadline.is_expired()
            with pytest.raises(SearchTimeoutException) as exc_info:
                deadline.ensure_remaining("count query")

        assert exc_info.value.details == {"stage": "count query", "budget_ms": 100}

    def test_zero_budget_is_expired_immediately(self) -> None:
        with pytest.raises(SearchTimeoutException):
            SearchDeadline(total_ms=0).ensure_remaining("query composition")
