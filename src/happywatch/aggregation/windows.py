"""Windowed read-only views over the activity log.

Every view re-reads the log at call time and keeps nothing between calls.
The ``build_*`` functions hold the aggregation rules and operate on plain
event lists; ``WindowAggregator`` binds them to a log and a clock.

Window policy everywhere: an event belongs to a window ending at ``now``
when ``timestamp >= now - window``.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from collections.abc import Mapping
from datetime import datetime
from datetime import UTC

from happywatch.activity.schemas import ActivityEvent
from happywatch.activity.store import ActivityLog
from happywatch.aggregation.schemas import ActorProgress
from happywatch.aggregation.schemas import DashboardSnapshot
from happywatch.aggregation.schemas import EndpointCount
from happywatch.aggregation.schemas import InactiveActor
from happywatch.aggregation.schemas import LiveActor
from happywatch.aggregation.schemas import TrafficSummary
from happywatch.clock import Clock
from happywatch.clock import SystemClock
from happywatch.config import WindowConfig
from happywatch.errors import ValidationError
from happywatch.observability import timed

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Aggregation rules
# ---------------------------------------------------------------------------


def _by_actor(events: Iterable[ActivityEvent]) -> dict[str, list[ActivityEvent]]:
    grouped: dict[str, list[ActivityEvent]] = {}
    for event in events:
        if event.actor:
            grouped.setdefault(event.actor, []).append(event)
    return grouped


def build_live_activity(events: Iterable[ActivityEvent]) -> list[LiveActor]:
    """One row per actor, newest first.

    The latest event is the max by ``(timestamp, id)``, so equal timestamps
    still select exactly one event.  Rows tie-break on that event's id.
    """
    rows: list[LiveActor] = []
    for actor, actor_events in _by_actor(events).items():
        latest = max(actor_events, key=lambda event: (event.timestamp, event.id))
        rows.append(
            LiveActor(
                actor=actor,
                last_seen=latest.timestamp,
                endpoint=latest.endpoint,
                event_id=latest.id,
                total_count=len(actor_events),
                error_count=sum(1 for event in actor_events if event.is_error),
            )
        )
    rows.sort(key=lambda row: (row.last_seen, row.event_id), reverse=True)
    return rows


def build_traffic_summary(
    events: Iterable[ActivityEvent], *, window_seconds: float
) -> TrafficSummary:
    events = list(events)
    total = len(events)
    errors = sum(1 for event in events if event.is_error)
    endpoint_counts = Counter(event.endpoint for event in events)
    return TrafficSummary(
        window_seconds=window_seconds,
        total_count=total,
        actor_count=len({event.actor for event in events if event.actor}),
        endpoints=[
            EndpointCount(endpoint=endpoint, count=count)
            for endpoint, count in sorted(
                endpoint_counts.items(), key=lambda item: (-item[1], item[0])
            )
        ],
        error_count=errors,
        error_rate=(100.0 * errors / total) if total else 0.0,
    )


def build_actor_progress(events: Iterable[ActivityEvent]) -> list[ActorProgress]:
    rows = [
        ActorProgress(
            actor=actor,
            total_count=len(actor_events),
            first_seen=min(event.timestamp for event in actor_events),
            last_seen=max(event.timestamp for event in actor_events),
            sessions=len({event.session for event in actor_events if event.session}),
        )
        for actor, actor_events in _by_actor(events).items()
    ]
    rows.sort(key=lambda row: (-row.total_count, row.actor))
    return rows


def build_inactive_actors(
    last_seen: Mapping[str, float], *, cutoff: float
) -> list[InactiveActor]:
    """Actors whose latest activity is strictly older than *cutoff*."""
    rows = [
        InactiveActor(actor=actor, last_seen=seen)
        for actor, seen in last_seen.items()
        if actor and seen < cutoff
    ]
    rows.sort(key=lambda row: (-row.last_seen, row.actor))
    return rows


# ---------------------------------------------------------------------------
# WindowAggregator
# ---------------------------------------------------------------------------


def _resolve_window(value: float | None, default: float, name: str) -> float:
    window = default if value is None else float(value)
    if window <= 0:
        raise ValidationError(f"{name} must be positive, got {window!r}")
    return window


class WindowAggregator:
    """Computes the live, summary, progress and inactivity views on demand."""

    def __init__(
        self,
        log: ActivityLog,
        *,
        config: WindowConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._log = log
        self.config = config or WindowConfig()
        self._clock = clock or SystemClock()

    def now(self) -> float:
        return self._clock.now()

    # -- the four views --

    async def live_activity(
        self, window: float | None = None, *, now: float | None = None
    ) -> list[LiveActor]:
        window = _resolve_window(window, self.config.live_seconds, "live window")
        now = self.now() if now is None else now
        with timed("views.live_activity"):
            events = await self._log.query_since(now - window)
            return build_live_activity(events)

    async def traffic_summary(
        self,
        window: float | None = None,
        *,
        now: float | None = None,
        since: float | None = None,
    ) -> TrafficSummary:
        """Summary over a trailing window, or from an absolute *since* onwards."""
        now = self.now() if now is None else now
        if since is None:
            window = _resolve_window(window, self.config.summary_seconds, "summary window")
            since = now - window
        elif since > now:
            raise ValidationError(f"since must not be in the future, got {since!r}")
        else:
            window = now - since
        with timed("views.traffic_summary"):
            events = await self._log.query_since(since)
            return build_traffic_summary(events, window_seconds=window)

    async def actor_progress(
        self, window: float | None = None, *, now: float | None = None
    ) -> list[ActorProgress]:
        window = _resolve_window(window, self.config.progress_seconds, "progress window")
        now = self.now() if now is None else now
        with timed("views.actor_progress"):
            events = await self._log.query_since(now - window)
            return build_actor_progress(events)

    async def inactive_actors(
        self, threshold: float | None = None, *, now: float | None = None
    ) -> list[InactiveActor]:
        threshold = _resolve_window(
            threshold, self.config.inactivity_seconds, "inactivity threshold"
        )
        now = self.now() if now is None else now
        cutoff = now - threshold
        with timed("views.inactive_actors"):
            last_seen = await self._log.last_seen_by_actor(before=cutoff)
            return build_inactive_actors(last_seen, cutoff=cutoff)

    async def dashboard(self) -> DashboardSnapshot:
        """All four views against one instant; any failure fails the snapshot."""
        now = self.now()
        with timed("views.dashboard"):
            return DashboardSnapshot(
                generated_at=now,
                live=await self.live_activity(now=now),
                summary=await self.traffic_summary(now=now),
                progress=await self.actor_progress(now=now),
                inactive=await self.inactive_actors(now=now),
            )

    # -- supplemental reads --

    async def export(
        self, *, since: float | None = None, actor: str | None = None
    ) -> list[ActivityEvent]:
        """Raw events from *since* onwards, optionally for one actor."""
        with timed("views.export"):
            return await self._log.query_since(since, actor=actor or None)

    async def actor_sequence(self, actor: str, endpoint: str) -> int:
        """How many requests *actor* has made to *endpoint* so far.

        Read right after an append, this is the position of that request
        in the actor's history for the endpoint (1 for the first).
        """
        if not actor or not actor.strip():
            raise ValidationError("actor is required")
        if not endpoint or not endpoint.strip():
            raise ValidationError("endpoint is required")
        events = await self._log.query_since(None, actor=actor.strip())
        return sum(1 for event in events if event.endpoint == endpoint.strip())

    async def requests_today(self) -> int:
        """Events since midnight UTC of the current day."""
        now = datetime.fromtimestamp(self.now(), tz=UTC)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return await self._log.count_since(midnight.timestamp())

    async def recent_events(self, after_id: int, *, limit: int) -> list[ActivityEvent]:
        return await self._log.events_after(after_id, limit=limit)

    async def latest_id(self) -> int:
        return await self._log.latest_id()
