"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem.
No env-var loading or YAML parsing; just plain defaults that can
be overridden at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StoreConfig:
    """Connection and key-space settings for the shared Redis store."""

    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "happywatch"


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-source admission quota: ``quota`` checks per bucket."""

    quota: int = 100
    bucket_seconds: int = 60


@dataclass(frozen=True)
class WindowConfig:
    """Default trailing windows (seconds) for the aggregated views."""

    live_seconds: float = 3600.0
    summary_seconds: float = 7200.0
    progress_seconds: float = 14400.0
    inactivity_seconds: float = 900.0


@dataclass(frozen=True)
class MonitorConfig:
    """Terminal monitor polling settings."""

    refresh_seconds: float = 3.0
    tail: int = 20
