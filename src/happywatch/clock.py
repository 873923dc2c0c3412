"""Time sources.

Every component that needs "now" takes a ``Clock`` so that window
boundaries and rate buckets can be pinned in tests.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Supplies the current instant as Unix epoch seconds."""

    def now(self) -> float:
        """Return the current instant."""


class SystemClock:
    """Wall-clock time from ``time.time``."""

    def now(self) -> float:
        return time.time()


class FixedClock:
    """Manually driven clock for deterministic tests and replays."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, instant: float) -> None:
        self._now = float(instant)

    def advance(self, seconds: float) -> float:
        """Move the clock forward by *seconds* and return the new instant."""
        self._now += seconds
        return self._now
