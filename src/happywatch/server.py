"""happywatch: FastMCP v2 server exposing ingestion, admission and views.

Tools delegate to the activity log, the rate limiter and the window
aggregator.  Call ``configure(redis_url=...)`` before using the server.
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from redis.asyncio import Redis  # type: ignore[import-untyped]

from happywatch.activity import create_activity
from happywatch.activity import EventStore
from happywatch.activity import InMemoryEventStore
from happywatch.activity import RequestGate
from happywatch.aggregation import DashboardSnapshot
from happywatch.aggregation import TrafficSummary
from happywatch.aggregation import WindowAggregator
from happywatch.clock import Clock
from happywatch.clock import SystemClock
from happywatch.config import RateLimitConfig
from happywatch.config import StoreConfig
from happywatch.config import WindowConfig
from happywatch.errors import HappywatchError
from happywatch.errors import StorageError
from happywatch.errors import ValidationError
from happywatch.models.schemas import ActorProgressResult
from happywatch.models.schemas import ExportResult
from happywatch.models.schemas import InactiveActorsResult
from happywatch.models.schemas import LiveActivityResult
from happywatch.models.schemas import RateLimitResult
from happywatch.models.schemas import RecordActivityResult
from happywatch.models.schemas import ServiceStatus
from happywatch.observability import timed
from happywatch.ratelimit import InMemoryBucketCounter
from happywatch.ratelimit import RateLimiter
from happywatch.ratelimit import RedisBucketCounter

logger = logging.getLogger(__name__)

SERVICE_VERSION = "1.0.0"

mcp = FastMCP("happywatch")

# ---------------------------------------------------------------------------
# Backends (set via configure())
# ---------------------------------------------------------------------------

_redis: Redis | None = None
_log: EventStore | InMemoryEventStore | None = None
_limiter: RateLimiter | None = None
_aggregator: WindowAggregator | None = None
_gate: RequestGate | None = None


async def configure(
    redis_url: str = StoreConfig.redis_url,
    *,
    prefix: str = StoreConfig.key_prefix,
    in_memory: bool = False,
    rate_limit_config: RateLimitConfig | None = None,
    window_config: WindowConfig | None = None,
    clock: Clock | None = None,
) -> None:
    """Initialize the store, limiter and aggregator.

    Must be called before the MCP tools can function.  With
    ``in_memory=True`` no Redis connection is made and state lives in
    this process only.
    """
    global _redis, _log, _limiter, _aggregator, _gate
    await shutdown()

    clock = clock or SystemClock()
    if in_memory:
        _log = InMemoryEventStore(clock=clock)
        counter = InMemoryBucketCounter()
    else:
        _redis = Redis.from_url(redis_url)
        _log = EventStore(_redis, clock=clock, prefix=prefix)
        counter = RedisBucketCounter(_redis, prefix=prefix)

    _limiter = RateLimiter(counter, config=rate_limit_config, clock=clock)
    _aggregator = WindowAggregator(_log, config=window_config, clock=clock)
    _gate = RequestGate(_limiter, _log)
    logger.info(
        "happywatch configured backend=%s quota=%d bucket_seconds=%d",
        "memory" if in_memory else "redis",
        _limiter.config.quota,
        _limiter.config.bucket_seconds,
    )


async def shutdown() -> None:
    """Close backend clients and release server resources."""
    global _redis, _log, _limiter, _aggregator, _gate
    if _redis is not None:
        try:
            await _redis.aclose()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass
    _redis = None
    _log = None
    _limiter = None
    _aggregator = None
    _gate = None


async def _reset_store() -> None:
    """Clear the activity log, exposed for test cleanup."""
    if _log is not None:
        await _log.clear()


def _get_aggregator() -> WindowAggregator:
    if _aggregator is None:
        raise ToolError("happywatch not configured. Call configure() first.")
    return _aggregator


def _get_limiter() -> RateLimiter:
    if _limiter is None:
        raise ToolError("happywatch not configured. Call configure() first.")
    return _limiter


def get_gate() -> RequestGate:
    """Return the configured request gate for host applications."""
    if _gate is None:
        raise RuntimeError("happywatch not configured. Call configure() first.")
    return _gate


def _as_tool_error(exc: HappywatchError) -> ToolError:
    if isinstance(exc, StorageError):
        logger.error("store failure: %s", exc)
        return ToolError(f"storage_error: {exc}")
    return ToolError(f"validation_error: {exc}")


# ---------------------------------------------------------------------------
# Tools: ingestion and admission
# ---------------------------------------------------------------------------


@mcp.tool
async def record_activity(
    endpoint: str,
    actor: str | None = None,
    session: str | None = None,
    source: str | None = None,
    agent: str | None = None,
    status: int | None = None,
    duration_ms: int | None = None,
) -> RecordActivityResult:
    """Append one request event to the activity log.

    The result carries the event id and, for a known actor, ``sequence``:
    the position of this request in the actor's history for the endpoint.

    Args:
        endpoint: Name of the operation performed.
        actor: Requesting party, if known.
        session: Session grouping key.
        source: Network identity of the caller.
        agent: Client descriptor.
        status: Outcome code; >= 400 counts as an error.
        duration_ms: Processing latency.
    """
    with timed("mcp.record_activity"):
        if _log is None:
            raise ToolError("happywatch not configured. Call configure() first.")
        try:
            activity = create_activity(
                endpoint,
                actor=actor,
                session=session,
                source=source,
                agent=agent,
                status=status,
                duration_ms=duration_ms,
            )
        except ValidationError as exc:
            return RecordActivityResult(
                status="rejected", error_code="validation_error", message=str(exc)
            )
        aggregator = _get_aggregator()
        try:
            event_id = await _log.append(activity)
            sequence = None
            if activity.actor:
                sequence = await aggregator.actor_sequence(
                    activity.actor, activity.endpoint
                )
        except StorageError as exc:
            raise _as_tool_error(exc) from exc
        return RecordActivityResult(event_id=event_id, sequence=sequence)


@mcp.tool
async def check_rate_limit(source: str) -> RateLimitResult:
    """Count one attempt for *source* and report whether it is within quota.

    Args:
        source: Network identity of the caller (e.g. its address).
    """
    with timed("mcp.check_rate_limit"):
        limiter = _get_limiter()
        try:
            decision = await limiter.decide(source)
        except ValidationError as exc:
            return RateLimitResult(
                allowed=False,
                status="rejected",
                error_code="validation_error",
                message=str(exc),
            )
        except StorageError as exc:
            raise _as_tool_error(exc) from exc
        return RateLimitResult(
            allowed=decision.allowed,
            count=decision.count,
            quota=decision.quota,
            bucket_key=decision.bucket_key,
        )


# ---------------------------------------------------------------------------
# Tools: views
# ---------------------------------------------------------------------------


@mcp.tool
async def live_activity(window_seconds: float | None = None) -> LiveActivityResult:
    """Who is active now: one row per actor, newest first.

    Args:
        window_seconds: Trailing window (default one hour).
    """
    with timed("mcp.live_activity"):
        aggregator = _get_aggregator()
        try:
            actors = await aggregator.live_activity(window_seconds)
        except HappywatchError as exc:
            raise _as_tool_error(exc) from exc
        return LiveActivityResult(
            window_seconds=window_seconds or aggregator.config.live_seconds,
            actors=actors,
        )


@mcp.tool
async def traffic_summary(window_seconds: float | None = None) -> TrafficSummary:
    """Totals, distinct actors, per-endpoint counts and error rate.

    Args:
        window_seconds: Trailing window (default two hours).
    """
    with timed("mcp.traffic_summary"):
        aggregator = _get_aggregator()
        try:
            return await aggregator.traffic_summary(window_seconds)
        except HappywatchError as exc:
            raise _as_tool_error(exc) from exc


@mcp.tool
async def actor_progress(window_seconds: float | None = None) -> ActorProgressResult:
    """Per-actor request totals, first/last seen and session counts.

    Args:
        window_seconds: Trailing window (default four hours).
    """
    with timed("mcp.actor_progress"):
        aggregator = _get_aggregator()
        try:
            actors = await aggregator.actor_progress(window_seconds)
        except HappywatchError as exc:
            raise _as_tool_error(exc) from exc
        return ActorProgressResult(
            window_seconds=window_seconds or aggregator.config.progress_seconds,
            actors=actors,
        )


@mcp.tool
async def inactive_actors(threshold_seconds: float | None = None) -> InactiveActorsResult:
    """Actors not seen within the threshold, most recently quiet first.

    Args:
        threshold_seconds: Idle time before an actor counts as inactive
            (default 15 minutes).
    """
    with timed("mcp.inactive_actors"):
        aggregator = _get_aggregator()
        try:
            actors = await aggregator.inactive_actors(threshold_seconds)
        except HappywatchError as exc:
            raise _as_tool_error(exc) from exc
        return InactiveActorsResult(
            threshold_seconds=threshold_seconds or aggregator.config.inactivity_seconds,
            actors=actors,
        )


@mcp.tool
async def dashboard() -> DashboardSnapshot:
    """All four views computed against a single instant."""
    with timed("mcp.dashboard"):
        aggregator = _get_aggregator()
        try:
            return await aggregator.dashboard()
        except HappywatchError as exc:
            raise _as_tool_error(exc) from exc


@mcp.tool
async def export_activity(
    since: float | None = None,
    actor: str | None = None,
) -> ExportResult:
    """Raw activity events in log order.

    Args:
        since: Inclusive lower bound (Unix epoch seconds); omit for all.
        actor: Restrict to one actor.
    """
    with timed("mcp.export_activity"):
        aggregator = _get_aggregator()
        try:
            events = await aggregator.export(since=since, actor=actor)
        except HappywatchError as exc:
            raise _as_tool_error(exc) from exc
        return ExportResult(since=since, actor=actor or None, events=events)


@mcp.tool
async def service_status() -> ServiceStatus:
    """Liveness, requests recorded today (UTC) and currently limited sources."""
    with timed("mcp.service_status"):
        aggregator = _get_aggregator()
        limiter = _get_limiter()
        try:
            today = await aggregator.requests_today()
            limited = await limiter.limited_sources()
        except HappywatchError as exc:
            raise _as_tool_error(exc) from exc
        return ServiceStatus(
            version=SERVICE_VERSION, requests_today=today, limited_sources=limited
        )
