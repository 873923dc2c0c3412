"""Per-(source, bucket) request counters.

The only write is an atomic increment that returns the post-increment
value; counts are never set or decremented.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Protocol

from redis.asyncio import Redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from happywatch.errors import StorageError

logger = logging.getLogger(__name__)


class BucketCounter(Protocol):
    """Storage boundary for rate-limit buckets."""

    async def increment(self, source: str, bucket_key: int) -> int:
        """Atomically add one to the bucket and return the new count."""

    async def get(self, source: str, bucket_key: int) -> int:
        """Current count for the bucket (0 when it was never touched)."""

    async def bucket_counts(self, bucket_key: int) -> dict[str, int]:
        """Counts of every source seen in *bucket_key*."""


class RedisBucketCounter:
    """One Redis hash per bucket: ``{prefix}:rate:{bucket_key}`` → source → count.

    ``HINCRBY`` creates the field at 1 or increments it, and replies with the
    new value, in a single server-side step.
    """

    def __init__(self, redis: Redis, *, prefix: str = "happywatch") -> None:
        self._redis = redis
        self._prefix = f"{prefix}:rate"

    def _bucket_key(self, bucket_key: int) -> str:
        return f"{self._prefix}:{bucket_key}"

    async def increment(self, source: str, bucket_key: int) -> int:
        try:
            return int(await self._redis.hincrby(self._bucket_key(bucket_key), source, 1))
        except RedisError as exc:
            raise StorageError(f"failed to increment rate bucket: {exc}") from exc

    async def get(self, source: str, bucket_key: int) -> int:
        try:
            raw = await self._redis.hget(self._bucket_key(bucket_key), source)
        except RedisError as exc:
            raise StorageError(f"failed to read rate bucket: {exc}") from exc
        return int(raw) if raw is not None else 0

    async def bucket_counts(self, bucket_key: int) -> dict[str, int]:
        try:
            raw = await self._redis.hgetall(self._bucket_key(bucket_key))
        except RedisError as exc:
            raise StorageError(f"failed to read rate bucket: {exc}") from exc
        return {
            (source.decode() if isinstance(source, bytes) else source): int(count)
            for source, count in raw.items()
        }

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryBucketCounter:
    """Dict-backed counters; the increment holds a lock for the whole update."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counts: dict[tuple[str, int], int] = {}

    async def increment(self, source: str, bucket_key: int) -> int:
        with self._lock:
            count = self._counts.get((source, bucket_key), 0) + 1
            self._counts[(source, bucket_key)] = count
            return count

    async def get(self, source: str, bucket_key: int) -> int:
        with self._lock:
            return self._counts.get((source, bucket_key), 0)

    async def bucket_counts(self, bucket_key: int) -> dict[str, int]:
        with self._lock:
            return {
                source: count
                for (source, key), count in self._counts.items()
                if key == bucket_key
            }

    async def close(self) -> None:
        return None
