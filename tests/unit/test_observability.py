"""Unit tests for in-process latency observability helpers."""

from __future__ import annotations

import logging

import pytest

from happywatch.observability import latency_metrics_snapshot
from happywatch.observability import record_latency
from happywatch.observability import reset_latency_metrics
from happywatch.observability import timed


class TestObservabilityLatency:
    def test_records_latency_aggregates(self):
        record_latency(operation="mcp.record_activity", duration_ms=10.0, ok=True)
        record_latency(operation="mcp.record_activity", duration_ms=30.0, ok=False)

        metrics = latency_metrics_snapshot()["mcp.record_activity"]
        assert metrics["count"] == 2
        assert metrics["error_count"] == 1
        assert metrics["total_ms"] == 40.0
        assert metrics["avg_ms"] == 20.0
        assert metrics["min_ms"] == 10.0
        assert metrics["max_ms"] == 30.0
        assert metrics["last_ms"] == 30.0

    def test_negative_duration_is_clamped(self):
        record_latency(operation="views.live_activity", duration_ms=-5.0)
        assert latency_metrics_snapshot()["views.live_activity"]["min_ms"] == 0.0

    def test_reset_clears_all_metrics(self):
        record_latency(operation="views.dashboard", duration_ms=12.0, ok=True)
        assert "views.dashboard" in latency_metrics_snapshot()
        reset_latency_metrics()
        assert latency_metrics_snapshot() == {}

    def test_logs_each_sample(self, caplog):
        with caplog.at_level(logging.INFO, logger="happywatch.observability"):
            record_latency(operation="views.export", duration_ms=1.0)
        assert "latency operation=views.export" in caplog.text


class TestTimed:
    def test_successful_block_counts_ok(self):
        with timed("views.traffic_summary"):
            pass
        metrics = latency_metrics_snapshot()["views.traffic_summary"]
        assert metrics["count"] == 1
        assert metrics["error_count"] == 0

    def test_raising_block_counts_error_and_propagates(self):
        with pytest.raises(RuntimeError):
            with timed("views.actor_progress"):
                raise RuntimeError("boom")
        metrics = latency_metrics_snapshot()["views.actor_progress"]
        assert metrics["count"] == 1
        assert metrics["error_count"] == 1
