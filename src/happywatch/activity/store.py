"""Redis-backed append-only activity log.

Each event is stored as a JSON string keyed by ``{prefix}:activity:event:{id}``.
``{prefix}:activity:seq`` hands out ids with ``INCR``.  Sorted sets scored by
timestamp index the log globally (``timeline``), per actor and per session.
``{prefix}:activity:last_seen`` keeps each actor's latest timestamp using
``ZADD GT`` so concurrent writers can only ever move it forward.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError
from redis.asyncio import Redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from happywatch.activity.schemas import ActivityEvent
from happywatch.activity.schemas import ActivityInput
from happywatch.clock import Clock
from happywatch.clock import SystemClock
from happywatch.errors import StorageError
from happywatch.errors import ValidationError

logger = logging.getLogger(__name__)

_CLEAR_BATCH_SIZE = 100


class ActivityLog(Protocol):
    """Storage boundary consumed by the aggregator and the request gate."""

    async def append(self, activity: ActivityInput) -> int:
        """Persist *activity* and return its assigned id."""

    async def query_range(
        self,
        window: float,
        *,
        actor: str | None = None,
        session: str | None = None,
    ) -> list[ActivityEvent]:
        """Events with ``timestamp >= now - window`` in (timestamp, id) order."""

    async def query_since(
        self,
        since: float | None,
        *,
        actor: str | None = None,
        session: str | None = None,
    ) -> list[ActivityEvent]:
        """Events with ``timestamp >= since`` (unbounded when ``None``)."""

    async def last_seen_by_actor(
        self, *, before: float | None = None
    ) -> dict[str, float]:
        """Latest timestamp per actor over the whole history.

        With *before*, only actors whose latest timestamp is strictly older
        are returned.
        """

    async def events_after(self, last_id: int, *, limit: int) -> list[ActivityEvent]:
        """Up to *limit* events with ``id > last_id``, in id order."""

    async def latest_id(self) -> int:
        """Highest id handed out so far (0 for an empty log)."""

    async def count_since(self, since: float) -> int:
        """Number of events with ``timestamp >= since``."""


def since_for_window(clock: Clock, window: float) -> float:
    """Inclusive lower bound for a trailing *window* ending now."""
    if window <= 0:
        raise ValidationError(f"window must be positive, got {window!r}")
    return clock.now() - window


def order_events(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    """Deterministic log order: timestamp, then id."""
    return sorted(events, key=lambda event: (event.timestamp, event.id))


def activity_fields(activity: ActivityInput) -> dict:
    """The caller-supplied fields of *activity*, without id or timestamp."""
    return {name: getattr(activity, name) for name in ActivityInput.model_fields}


def _decode(raw: bytes | str) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw


class EventStore:
    """Append-only activity log in Redis."""

    def __init__(
        self,
        redis: Redis,
        *,
        clock: Clock | None = None,
        prefix: str = "happywatch",
    ) -> None:
        self._redis = redis
        self._clock = clock or SystemClock()
        self._prefix = f"{prefix}:activity"

    # -- keys --

    @property
    def _seq_key(self) -> str:
        return f"{self._prefix}:seq"

    @property
    def _timeline_key(self) -> str:
        return f"{self._prefix}:timeline"

    @property
    def _last_seen_key(self) -> str:
        return f"{self._prefix}:last_seen"

    def _event_key(self, event_id: int | str) -> str:
        return f"{self._prefix}:event:{event_id}"

    def _actor_key(self, actor: str) -> str:
        return f"{self._prefix}:actor:{actor}"

    def _session_key(self, session: str) -> str:
        return f"{self._prefix}:session:{session}"

    # -- write --

    async def append(self, activity: ActivityInput) -> int:
        """Persist *activity* and return its id.

        The id comes from ``INCR``; the payload and every index update are
        written in one MULTI/EXEC transaction, so readers never observe a
        half-indexed event.
        """
        try:
            event_id = int(await self._redis.incr(self._seq_key))
            event = ActivityEvent(
                id=event_id,
                timestamp=self._clock.now(),
                **activity_fields(activity),
            )
            member = str(event_id)

            pipe = self._redis.pipeline(transaction=True)
            pipe.set(self._event_key(event_id), event.model_dump_json())
            pipe.zadd(self._timeline_key, {member: event.timestamp})
            if event.actor:
                pipe.zadd(self._actor_key(event.actor), {member: event.timestamp})
                pipe.zadd(self._last_seen_key, {event.actor: event.timestamp}, gt=True)
            if event.session:
                pipe.zadd(self._session_key(event.session), {member: event.timestamp})
            await pipe.execute()
        except RedisError as exc:
            raise StorageError(f"failed to append activity: {exc}") from exc

        logger.debug(
            "activity appended id=%d endpoint=%s actor=%s status=%s",
            event_id,
            event.endpoint,
            event.actor,
            event.status,
        )
        return event_id

    # -- read --

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
        if actor:
            index = self._actor_key(actor)
        elif session:
            index = self._session_key(session)
        else:
            index = self._timeline_key
        lower = "-inf" if since is None else since

        try:
            ids = await self._redis.zrangebyscore(index, lower, "+inf")
            events = await self._load([_decode(raw) for raw in ids])
        except RedisError as exc:
            raise StorageError(f"failed to query activity: {exc}") from exc

        if actor and session:
            events = [event for event in events if event.session == session]
        return order_events(events)

    async def last_seen_by_actor(
        self, *, before: float | None = None
    ) -> dict[str, float]:
        upper = "+inf" if before is None else f"({before!r}"
        try:
            rows = await self._redis.zrangebyscore(
                self._last_seen_key, "-inf", upper, withscores=True
            )
        except RedisError as exc:
            raise StorageError(f"failed to read last-seen index: {exc}") from exc
        return {_decode(actor): float(score) for actor, score in rows}

    async def events_after(self, last_id: int, *, limit: int) -> list[ActivityEvent]:
        if limit <= 0:
            return []
        try:
            newest = await self.latest_id()
            upper = min(newest, last_id + limit)
            ids = [str(event_id) for event_id in range(last_id + 1, upper + 1)]
            # ids reserved by an append that never committed are skipped
            events = await self._load(ids, missing_ok=True)
        except RedisError as exc:
            raise StorageError(f"failed to read recent activity: {exc}") from exc
        return sorted(events, key=lambda event: event.id)

    async def latest_id(self) -> int:
        try:
            raw = await self._redis.get(self._seq_key)
        except RedisError as exc:
            raise StorageError(f"failed to read activity sequence: {exc}") from exc
        return int(raw) if raw is not None else 0

    async def count_since(self, since: float) -> int:
        try:
            return int(await self._redis.zcount(self._timeline_key, since, "+inf"))
        except RedisError as exc:
            raise StorageError(f"failed to count activity: {exc}") from exc

    async def clear(self) -> None:
        """Remove every key of this log (test helper)."""
        batch: list = []
        async for key in self._redis.scan_iter(match=f"{self._prefix}:*"):
            batch.append(key)
            if len(batch) >= _CLEAR_BATCH_SIZE:
                await self._redis.delete(*batch)
                batch.clear()
        if batch:
            await self._redis.delete(*batch)

    async def close(self) -> None:
        await self._redis.aclose()

    # -- internal --

    async def _load(
        self, ids: list[str], *, missing_ok: bool = False
    ) -> list[ActivityEvent]:
        if not ids:
            return []
        payloads = await self._redis.mget([self._event_key(fid) for fid in ids])

        events: list[ActivityEvent] = []
        for event_id, raw in zip(ids, payloads):
            if raw is None:
                if missing_ok:
                    continue
                raise StorageError(f"activity {event_id} is indexed but has no payload")
            try:
                events.append(ActivityEvent.model_validate_json(raw))
            except PydanticValidationError as exc:
                raise StorageError(f"activity {event_id} payload is corrupt") from exc
        return events
