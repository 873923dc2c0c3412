"""Fixed-bucket admission control keyed by source identity."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from happywatch.clock import Clock
from happywatch.clock import SystemClock
from happywatch.config import RateLimitConfig
from happywatch.errors import ValidationError
from happywatch.ratelimit.counters import BucketCounter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateDecision:
    """Outcome of one admission check."""

    allowed: bool
    count: int
    bucket_key: int
    quota: int


class RateLimiter:
    """Allows at most ``quota`` checks per source per bucket.

    Every check counts, admitted or not, so a source that keeps retrying
    while over quota stays rejected until the bucket rolls over.
    """

    def __init__(
        self,
        counter: BucketCounter,
        *,
        config: RateLimitConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or RateLimitConfig()
        if self.config.quota < 1:
            raise ValidationError("quota must be >= 1")
        if self.config.bucket_seconds <= 0:
            raise ValidationError("bucket_seconds must be positive")
        self._counter = counter
        self._clock = clock or SystemClock()

    def bucket_key(self, now: float) -> int:
        return math.floor(now / self.config.bucket_seconds)

    async def decide(self, source: str, now: float | None = None) -> RateDecision:
        """Count one attempt for *source* and compare the new total to the quota."""
        if not source or not source.strip():
            raise ValidationError("source identity is required for rate limiting")
        key = self.bucket_key(self._clock.now() if now is None else now)
        count = await self._counter.increment(source, key)
        decision = RateDecision(
            allowed=count <= self.config.quota,
            count=count,
            bucket_key=key,
            quota=self.config.quota,
        )
        if count == self.config.quota + 1:
            logger.info("source %s reached quota in bucket %d", source, key)
        return decision

    async def check(self, source: str, now: float | None = None) -> bool:
        return (await self.decide(source, now)).allowed

    async def current_count(self, source: str, now: float | None = None) -> int:
        """Read the bucket count without counting an attempt."""
        key = self.bucket_key(self._clock.now() if now is None else now)
        return await self._counter.get(source, key)

    async def limited_sources(self, now: float | None = None) -> list[str]:
        """Sources already over quota in the current bucket, sorted by name."""
        key = self.bucket_key(self._clock.now() if now is None else now)
        counts = await self._counter.bucket_counts(key)
        return sorted(
            source for source, count in counts.items() if count > self.config.quota
        )
