"""
Dwell detection (pure state machine, no timers).

The detector answers one question: has the user stayed within `dwell_radius_meters`
of an anchor point for at least `dwell_threshold_seconds`? When the answer first
becomes "yes" for an anchor, `on_dwell_detected(anchor, elapsed_seconds)` fires,
exactly once. Moving beyond the radius replaces the anchor and re-arms the detector.

Two entry points mutate state:
- `on_sample(coordinate)`: a new position from the location source,
- `tick()`: a periodic re-check so the threshold is caught between sparse samples.

Scheduling (timers, subscriptions) lives in `credify.monitoring.monitor`; here time
comes from an injectable clock (epoch seconds) or an explicit `now` argument.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable

from credify.core.geo import haversine_m
from credify.core.state import PreferencesContext
from credify.core.time import Clock, system_clock
from credify.domain.models import Coordinate

logger = logging.getLogger(__name__)

DwellCallback = Callable[[Coordinate, int], None]


@dataclass
class DwellState:
    """The current stay: anchor point, when it was set, and whether it already fired."""

    anchor: Coordinate
    anchor_started_at: float
    notified: bool = False
    last_sample_at: float | None = None


@dataclass(frozen=True)
class LocationError:
    """A non-fatal error reported by the location source (permission, unavailable, timeout)."""

    code: int
    message: str


@dataclass(frozen=True)
class DwellStatus:
    """Read-only view for UIs ("dwelling for Ns")."""

    enabled: bool
    current_location: Coordinate | None
    anchor: Coordinate | None
    dwell_seconds: int
    is_dwelling: bool
    notified: bool
    error: LocationError | None


class DwellDetector:
    """Detects dwelling from a stream of position samples.

    Threshold and radius are read on every sample/tick, either from a shared
    `PreferencesContext` (runtime-adjustable) or from the constructor values.
    """

    def __init__(
        self,
        *,
        dwell_threshold_seconds: float = 300,
        dwell_radius_meters: float = 30,
        on_dwell_detected: DwellCallback | None = None,
        enabled: bool = True,
        preferences: PreferencesContext | None = None,
        clock: Clock = system_clock,
    ):
        self.dwell_threshold_seconds = float(dwell_threshold_seconds)
        self.dwell_radius_meters = float(dwell_radius_meters)
        self.on_dwell_detected = on_dwell_detected
        self._preferences = preferences
        self._clock = clock
        self._enabled = enabled
        self._lock = threading.Lock()
        self._state: DwellState | None = None
        self._current: Coordinate | None = None
        self._elapsed = 0
        self._last_error: LocationError | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def state(self) -> DwellState | None:
        return self._state

    @property
    def last_error(self) -> LocationError | None:
        return self._last_error

    def _limits(self) -> tuple[float, float]:
        if self._preferences is not None:
            prefs = self._preferences.current
            return float(prefs.dwell_threshold_seconds), float(prefs.dwell_radius_meters)
        return self.dwell_threshold_seconds, self.dwell_radius_meters

    def enable(self) -> None:
        """Start monitoring from Idle (no anchor)."""
        with self._lock:
            self._enabled = True
            self._reset()

    def disable(self) -> None:
        """Stop consuming samples and discard the current stay."""
        with self._lock:
            self._enabled = False
            self._reset()

    def _reset(self) -> None:
        self._state = None
        self._current = None
        self._elapsed = 0
        self._last_error = None

    def on_sample(self, coordinate: Coordinate, now: float | None = None) -> None:
        """Consume one position sample."""
        fired: tuple[Coordinate, int] | None = None
        with self._lock:
            if not self._enabled:
                return
            now = self._clock() if now is None else float(now)
            self._current = coordinate
            self._last_error = None

            state = self._state
            if state is None:
                self._state = DwellState(anchor=coordinate, anchor_started_at=now, last_sample_at=now)
                self._elapsed = 0
                logger.debug(
                    "Anchor set at %.6f,%.6f", coordinate.latitude, coordinate.longitude
                )
                return

            state.last_sample_at = now
            _, radius = self._limits()
            distance = haversine_m(state.anchor, coordinate)
            if distance < radius:
                fired = self._evaluate(now)
            else:
                logger.info("Moved %.0fm from anchor; resetting dwell timer", distance)
                self._state = DwellState(anchor=coordinate, anchor_started_at=now, last_sample_at=now)
                self._elapsed = 0

        if fired is not None:
            self._fire(*fired)

    def tick(self, now: float | None = None) -> int:
        """Re-evaluate elapsed time without a new sample; returns elapsed whole seconds."""
        fired: tuple[Coordinate, int] | None = None
        with self._lock:
            if not self._enabled or self._state is None:
                return 0
            now = self._clock() if now is None else float(now)
            fired = self._evaluate(now)
            elapsed = self._elapsed

        if fired is not None:
            self._fire(*fired)
        return elapsed

    def on_error(self, code: int, message: str) -> None:
        """Record a location error; the current stay is kept."""
        with self._lock:
            self._last_error = LocationError(code=int(code), message=str(message))
        logger.warning("Location error %s: %s", code, message)

    def _evaluate(self, now: float) -> tuple[Coordinate, int] | None:
        """Update elapsed time and mark the stay notified if it just crossed the threshold.

        Must be called with the lock held. Returns the callback arguments when firing.
        """
        state = self._state
        if state is None:
            return None
        threshold, _ = self._limits()
        self._elapsed = max(0, math.floor(now - state.anchor_started_at))
        if self._elapsed >= threshold and not state.notified:
            state.notified = True
            return state.anchor, self._elapsed
        return None

    def _fire(self, anchor: Coordinate, elapsed: int) -> None:
        logger.info(
            "Dwelling detected: %ss at %.6f,%.6f", elapsed, anchor.latitude, anchor.longitude
        )
        if self.on_dwell_detected is None:
            return
        try:
            self.on_dwell_detected(anchor, elapsed)
        except Exception:
            # Downstream failures must never corrupt or stop dwell tracking.
            logger.exception("Dwell callback failed")

    def status(self) -> DwellStatus:
        with self._lock:
            state = self._state
            threshold, _ = self._limits()
            return DwellStatus(
                enabled=self._enabled,
                current_location=self._current,
                anchor=state.anchor if state else None,
                dwell_seconds=self._elapsed,
                is_dwelling=state is not None and self._elapsed >= threshold,
                notified=state.notified if state else False,
                error=self._last_error,
            )
