"""Unit tests for the request gate (admission + activity tracking)."""

from __future__ import annotations

import asyncio
import logging

import pytest

from happywatch.activity import RequestGate
from happywatch.activity.gate import CLIENT_CLOSED_STATUS
from happywatch.config import RateLimitConfig
from happywatch.errors import StorageError
from happywatch.ratelimit import InMemoryBucketCounter
from happywatch.ratelimit import RateLimiter


@pytest.fixture()
def gate(limiter, store):
    return RequestGate(limiter, store)


class TestAdmit:
    async def test_admits_within_quota(self, gate):
        assert await gate.admit("10.0.0.1") is True

    async def test_rejects_over_quota_with_warning(self, store, clock, caplog):
        limiter = RateLimiter(
            InMemoryBucketCounter(), config=RateLimitConfig(quota=1), clock=clock
        )
        gate = RequestGate(limiter, store)
        await gate.admit("src")
        with caplog.at_level(logging.WARNING, logger="happywatch.activity.gate"):
            assert await gate.admit("src") is False
        assert "rate limit exceeded" in caplog.text


class TestTrack:
    async def test_records_one_event_with_status(self, gate, store):
        async with gate.track("/message", actor="alice", source="10.0.0.1") as call:
            call.status = 201

        [event] = await store.query_since(None)
        assert event.id == call.event_id
        assert event.endpoint == "/message"
        assert event.actor == "alice"
        assert event.source == "10.0.0.1"
        assert event.status == 201
        assert event.duration_ms is not None and event.duration_ms >= 0

    async def test_default_status_is_success(self, gate, store):
        async with gate.track("/health"):
            pass
        [event] = await store.query_since(None)
        assert event.status == 200
        assert event.is_error is False

    async def test_failure_records_500_and_propagates(self, gate, store):
        with pytest.raises(RuntimeError):
            async with gate.track("/message", actor="alice"):
                raise RuntimeError("handler failed")

        [event] = await store.query_since(None)
        assert event.status == 500
        assert event.is_error is True

    async def test_failure_keeps_explicit_error_status(self, gate, store):
        with pytest.raises(ValueError):
            async with gate.track("/message") as call:
                call.status = 422
                raise ValueError("bad payload")

        [event] = await store.query_since(None)
        assert event.status == 422

    async def test_cancelled_body_is_not_recorded_as_success(self, gate, store):
        started = asyncio.Event()

        async def handler():
            async with gate.track("/slow", actor="alice"):
                started.set()
                await asyncio.sleep(60)

        task = asyncio.create_task(handler())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        [event] = await store.query_since(None)
        assert event.status == CLIENT_CLOSED_STATUS
        assert event.is_error is True

    async def test_storage_failure_logs_body_error(self, limiter, caplog):
        gate = RequestGate(limiter, _FailingLog())

        with caplog.at_level(logging.ERROR, logger="happywatch.activity.gate"):
            with pytest.raises(StorageError):
                async with gate.track("/message"):
                    raise RuntimeError("handler failed")

        assert "activity not recorded for failed call endpoint=/message status=500" in caplog.text
        assert "handler failed" in caplog.text

    async def test_storage_failure_after_success_propagates(self, limiter, caplog):
        gate = RequestGate(limiter, _FailingLog())

        with pytest.raises(StorageError):
            async with gate.track("/message"):
                pass
        assert "activity not recorded" not in caplog.text


class _FailingLog:
    async def append(self, activity):
        raise StorageError("connection refused")
