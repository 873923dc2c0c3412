"""Integration fixtures: a session-scoped Redis 7 testcontainer."""

from __future__ import annotations

import logging
import time

import pytest
import redis as sync_redis
from redis.asyncio import Redis
from testcontainers.core.container import DockerContainer

from happywatch.activity import EventStore
from happywatch.clock import FixedClock
from happywatch.ratelimit import RedisBucketCounter

logger = logging.getLogger(__name__)

NOW = 1_700_000_000.0


@pytest.fixture(scope="session")
def redis_container():
    """Spin up a Redis 7 container and yield its URL.

    Session-scoped: one container for the entire test run.
    """
    container = DockerContainer("redis:7-alpine").with_exposed_ports(6379)
    with container as c:
        host = c.get_container_host_ip()
        port = c.get_exposed_port(6379)
        url = f"redis://{host}:{port}"

        # Wait for Redis readiness
        r = sync_redis.Redis(host=host, port=int(port))
        max_attempts = 30
        for attempt in range(max_attempts):
            try:
                r.ping()
                r.close()
                break
            except Exception as exc:
                if attempt == max_attempts - 1:
                    r.close()
                    raise
                logger.debug(
                    "Redis not ready (attempt %d/%d): %s",
                    attempt + 1,
                    max_attempts,
                    exc,
                )
                time.sleep(1)

        yield url


@pytest.fixture()
async def redis_client(redis_container):
    """Yield an async Redis client connected to the test container."""
    client = Redis.from_url(redis_container)
    yield client
    await client.aclose()


@pytest.fixture(autouse=True)
async def clean_redis(redis_client):
    """Flush Redis between tests."""
    await redis_client.flushdb()
    yield
    await redis_client.flushdb()


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def event_store(redis_client, clock):
    return EventStore(redis_client, clock=clock, prefix="test")


@pytest.fixture()
def bucket_counter(redis_client):
    return RedisBucketCounter(redis_client, prefix="test")
