"""
Clock helpers.

Credify keeps two time units on purpose:
- the dwell detector works in epoch *seconds* (floats, like `time.time()`),
- notification timestamps and cooldowns are epoch *milliseconds* (ints), matching
  what the presentation layer persists.

Components take an injectable `Clock` so tests can drive time explicitly.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Current wall-clock time in epoch seconds."""
    return time.time()


def to_epoch_ms(seconds: float) -> int:
    """Convert epoch seconds to integer epoch milliseconds."""
    return int(round(seconds * 1000))


class ManualClock:
    """A clock that only moves when told to (trace replay, tests)."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def set(self, seconds: float) -> None:
        self.now = float(seconds)

    def advance(self, seconds: float) -> float:
        self.now += float(seconds)
        return self.now


def format_epoch_ms(ms: int) -> str:
    """Render an epoch-ms timestamp as an ISO-8601 UTC string (for logs and CLI output)."""
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat()
