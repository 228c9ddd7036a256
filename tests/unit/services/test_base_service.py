"""Unit tests for BaseService performance measurement."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from placesearch.services.base import BaseService

METRICS = "placesearch.services.base.prometheus_metrics"


class _Service(BaseService):
    @BaseService.measure_operation("sync_op")
    def sync_op(self, value: int) -> int:
        return value * 2

    @BaseService.measure_operation("failing_op")
    def failing_op(self) -> None:
        raise KeyError("missing")

    @BaseService.measure_operation("async_op")
    async def async_op(self) -> str:
        await asyncio.sleep(0)
        return "done"

    @BaseService.measure_operation("slow_async_op")
    async def slow_async_op(self) -> None:
        await asyncio.sleep(10)


class TestMeasureOperation:
    def test_sync_success(self) -> None:
        with patch(METRICS) as metrics:
            assert _Service(MagicMock()).sync_op(4) == 8

        metrics.record_service_operation.assert_called_once()
        kwargs = metrics.record_service_operation.call_args.kwargs
        assert kwargs["service"] == "_Service"
        assert kwargs["operation"] == "sync_op"
        assert kwargs["status"] == "success"
        assert kwargs["error_type"] is None

    def test_sync_failure_records_error_type(self) -> None:
        with patch(METRICS) as metrics:
            with pytest.raises(KeyError):
                _Service(MagicMock()).failing_op()

        kwargs = metrics.record_service_operation.call_args.kwargs
        assert kwargs["status"] == "error"
        assert kwargs["error_type"] == "KeyError"

    @pytest.mark.asyncio
    async def test_async_success(self) -> None:
        with patch(METRICS) as metrics:
            assert await _Service(MagicMock()).async_op() == "done"

        assert metrics.record_service_operation.call_args.kwargs["status"] == "success"

    @pytest.mark.asyncio
    async def test_async_cancellation_is_recorded(self) -> None:
        with patch(METRICS) as metrics:
            task = asyncio.create_task(_Service(MagicMock()).slow_async_op())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        kwargs = metrics.record_service_operation.call_args.kwargs
        assert kwargs["error_type"] == "CancelledError"

    def test_metrics_failure_does_not_break_operation(self) -> None:
        with patch(METRICS) as metrics:
            metrics.record_service_operation.side_effect = RuntimeError("registry broken")
            assert _Service(MagicMock()).sync_op(1) == 2

    def test_slow_operation_warns(self, caplog) -> None:
        with patch(METRICS), patch("placesearch.services.base.time") as mock_time:
            mock_time.perf_counter.side_effect = [0.0, 3.0]
            with caplog.at_level("WARNING"):
                _Service(MagicMock()).sync_op(1)

        assert "Slow operation detected: sync_op" in caplog.text


class TestMeasureOperationContext:
    def test_records_block(self) -> None:
        service = _Service(MagicMock())

        with patch(METRICS) as metrics:
            with service.measure_operation_context("count_query"):
                pass

        assert metrics.record_service_operation.call_args.kwargs["operation"] == "count_query"
