"""Rate limiting: per-source quotas over fixed time buckets."""

from happywatch.ratelimit.counters import BucketCounter
from happywatch.ratelimit.counters import InMemoryBucketCounter
from happywatch.ratelimit.counters import RedisBucketCounter
from happywatch.ratelimit.limiter import RateDecision
from happywatch.ratelimit.limiter import RateLimiter

__all__ = [
    "BucketCounter",
    "InMemoryBucketCounter",
    "RateDecision",
    "RateLimiter",
    "RedisBucketCounter",
]
