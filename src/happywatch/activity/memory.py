"""In-process activity log with the same contract as the Redis store.

Used by unit tests and by local runs without a Redis server.  State is
per instance; nothing is shared between processes.
"""

from __future__ import annotations

import asyncio

from happywatch.activity.schemas import ActivityEvent
from happywatch.activity.schemas import ActivityInput
from happywatch.activity.store import activity_fields
from happywatch.activity.store import order_events
from happywatch.activity.store import since_for_window
from happywatch.clock import Clock
from happywatch.clock import SystemClock


class InMemoryEventStore:
    """List-backed append-only log guarded by an ``asyncio.Lock``."""

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._events: list[ActivityEvent] = []
        self._last_seen: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def append(self, activity: ActivityInput) -> int:
        async with self._lock:
            event = ActivityEvent(
                id=len(self._events) + 1,
                timestamp=self._clock.now(),
                **activity_fields(activity),
            )
            self._events.append(event)
            if event.actor:
                previous = self._last_seen.get(event.actor)
                if previous is None or event.timestamp > previous:
                    self._last_seen[event.actor] = event.timestamp
        return event.id

    async def query_range(
        self,
        window: float,
        *,
        actor: str | None = None,
        session: str | None = None,
    ) -> list[ActivityEvent]:
        since = since_for_window(self._clock, window)
        return await self.query_since(since, actor=actor, session=session)

    async def query_since(
        self,
        since: float | None,
        *,
        actor: str | None = None,
        session: str | None = None,
    ) -> list[ActivityEvent]:
        async with self._lock:
            snapshot = list(self._events)
        return order_events(
            event
            for event in snapshot
            if (since is None or event.timestamp >= since)
            and (not actor or event.actor == actor)
            and (not session or event.session == session)
        )

    async def last_seen_by_actor(
        self, *, before: float | None = None
    ) -> dict[str, float]:
        async with self._lock:
            return {
                actor: seen
                for actor, seen in self._last_seen.items()
                if before is None or seen < before
            }

    async def events_after(self, last_id: int, *, limit: int) -> list[ActivityEvent]:
        if limit <= 0:
            return []
        async with self._lock:
            # ids are 1-based list positions
            return self._events[max(last_id, 0) : max(last_id, 0) + limit]

    async def latest_id(self) -> int:
        async with self._lock:
            return len(self._events)

    async def count_since(self, since: float) -> int:
        async with self._lock:
            return sum(1 for event in self._events if event.timestamp >= since)

    async def clear(self) -> None:
        async with self._lock:
            self._events.clear()
            self._last_seen.clear()

    async def close(self) -> None:
        return None
