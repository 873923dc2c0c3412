"""Unit test fixtures: pinned clock, in-memory backends, FastMCP client."""

from __future__ import annotations

import pytest
from fastmcp import Client

from happywatch.activity import InMemoryEventStore
from happywatch.aggregation import WindowAggregator
from happywatch.clock import FixedClock
from happywatch.ratelimit import InMemoryBucketCounter
from happywatch.ratelimit import RateLimiter

# 2023-11-14T22:13:20Z; bucket-aligned for 60s buckets.
NOW = 1_699_999_980.0


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def store(clock):
    return InMemoryEventStore(clock=clock)


@pytest.fixture()
def limiter(clock):
    return RateLimiter(InMemoryBucketCounter(), clock=clock)


@pytest.fixture()
def aggregator(store, clock):
    return WindowAggregator(store, clock=clock)


@pytest.fixture()
async def mcp_client(clock):
    """Yield a FastMCP Client wired to an in-memory happywatch server."""
    from happywatch.server import configure
    from happywatch.server import mcp
    from happywatch.server import shutdown

    await configure(in_memory=True, clock=clock)

    async with Client(mcp) as client:
        yield client

    await shutdown()
