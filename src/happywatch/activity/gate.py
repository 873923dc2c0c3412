"""Per-request control flow: admission check, timed work, activity append."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from time import perf_counter

from happywatch.activity.schemas import ActivityInput
from happywatch.activity.store import ActivityLog
from happywatch.errors import StorageError
from happywatch.ratelimit.limiter import RateLimiter

logger = logging.getLogger(__name__)

# request abandoned before a response was produced
CLIENT_CLOSED_STATUS = 499


@dataclass
class TrackedCall:
    """Mutable outcome of one tracked unit of work."""

    endpoint: str
    actor: str | None = None
    session: str | None = None
    source: str | None = None
    agent: str | None = None
    status: int = 200
    event_id: int | None = None


class RequestGate:
    """Wraps inbound work with rate limiting and activity logging."""

    def __init__(self, limiter: RateLimiter, log: ActivityLog) -> None:
        self._limiter = limiter
        self._log = log

    async def admit(self, source: str) -> bool:
        """Run the admission check for *source*.

        A ``False`` result is the quota-exceeded signal; the caller chooses
        the response (e.g. a 429) and whether to record it.
        """
        decision = await self._limiter.decide(source)
        if not decision.allowed:
            logger.warning(
                "rate limit exceeded source=%s bucket=%d count=%d quota=%d",
                source,
                decision.bucket_key,
                decision.count,
                decision.quota,
            )
        return decision.allowed

    @asynccontextmanager
    async def track(
        self,
        endpoint: str,
        *,
        actor: str | None = None,
        session: str | None = None,
        source: str | None = None,
        agent: str | None = None,
    ) -> AsyncIterator[TrackedCall]:
        """Time the enclosed block and append one activity event on exit.

        The body sets ``call.status``.  If it raises, the event is recorded
        with status 500 (unless the body already set an error status) and the
        exception propagates.  A cancelled body is recorded with status 499.

        If recording fails after the body raised, the storage error replaces
        the body's exception; the body's failure is logged first.
        """
        call = TrackedCall(
            endpoint=endpoint,
            actor=actor,
            session=session,
            source=source,
            agent=agent,
        )
        start = perf_counter()
        failure: BaseException | None = None
        try:
            yield call
        except asyncio.CancelledError as exc:
            failure = exc
            if call.status < 400:
                call.status = CLIENT_CLOSED_STATUS
            raise
        except Exception as exc:
            failure = exc
            if call.status < 400:
                call.status = 500
            raise
        finally:
            await self._record(call, start, failure)

    async def _record(
        self, call: TrackedCall, start: float, failure: BaseException | None
    ) -> None:
        try:
            call.event_id = await self._log.append(
                ActivityInput.model_validate(
                    {
                        "endpoint": call.endpoint,
                        "actor": call.actor,
                        "session": call.session,
                        "source": call.source,
                        "agent": call.agent,
                        "status": call.status,
                        "duration_ms": int((perf_counter() - start) * 1000),
                    }
                )
            )
        except StorageError:
            if failure is not None:
                logger.error(
                    "activity not recorded for failed call endpoint=%s status=%d: %r",
                    call.endpoint,
                    call.status,
                    failure,
                )
            raise
