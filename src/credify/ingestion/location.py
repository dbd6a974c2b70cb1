"""Location source contract, a push-driven source, and CSV trace input."""

from __future__ import annotations

import csv
import itertools
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Protocol

from credify.domain.models import Coordinate

logger = logging.getLogger(__name__)

SampleCallback = Callable[[Coordinate], None]
ErrorCallback = Callable[[int, str], None]

# Geolocation error codes as reported by browsers/devices.
PERMISSION_DENIED = 1
POSITION_UNAVAILABLE = 2
TIMEOUT = 3

_ERROR_MESSAGES = {
    PERMISSION_DENIED: "Location permission denied. Please enable location access in your settings.",
    POSITION_UNAVAILABLE: "Location information is unavailable.",
    TIMEOUT: "Location request timed out.",
}


def location_error_message(code: int) -> str:
    return _ERROR_MESSAGES.get(code, "An unknown error occurred while getting your location.")


class LocationSource(Protocol):
    """Push-based position feed. Errors are non-fatal and keep the subscription alive."""

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> int: ...

    def unsubscribe(self, handle: int) -> None: ...


class PushLocationSource:
    """A location source fed explicitly (HTTP endpoint, device bridge, tests).

    `push` may be called from any thread; subscribers are invoked on the caller's thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscribers: dict[int, tuple[SampleCallback, ErrorCallback]] = {}

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> int:
        with self._lock:
            handle = next(self._ids)
            self._subscribers[handle] = (on_sample, on_error)
            return handle

    def unsubscribe(self, handle: int) -> None:
        with self._lock:
            self._subscribers.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def push(self, coordinate: Coordinate) -> None:
        with self._lock:
            callbacks = [s for s, _ in self._subscribers.values()]
        for on_sample in callbacks:
            on_sample(coordinate)

    def push_error(self, code: int, message: str | None = None) -> None:
        text = message or location_error_message(code)
        with self._lock:
            callbacks = [e for _, e in self._subscribers.values()]
        for on_error in callbacks:
            on_error(code, text)


@dataclass(frozen=True)
class TraceSample:
    """One recorded position with its epoch-ms timestamp."""

    timestamp_ms: int
    coordinate: Coordinate

    @property
    def timestamp_s(self) -> float:
        return self.timestamp_ms / 1000.0


def iter_trace_samples(csv_path: str | Path) -> Iterator[TraceSample]:
    """Yield samples from a `timestamp_ms,latitude,longitude[,accuracy]` CSV.

    Malformed rows are skipped; a missing required column raises `KeyError`.
    """
    p = Path(csv_path)
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            return

        skipped = 0
        for row in reader:
            try:
                accuracy = (row.get("accuracy") or "").strip()
                yield TraceSample(
                    timestamp_ms=int(row["timestamp_ms"].strip()),
                    coordinate=Coordinate(
                        latitude=float(row["latitude"].strip()),
                        longitude=float(row["longitude"].strip()),
                        accuracy=float(accuracy) if accuracy else None,
                    ),
                )
            except KeyError as exc:
                raise KeyError(f"Trace CSV is missing column {exc}; found {reader.fieldnames}") from exc
            except (ValueError, TypeError, AttributeError):
                skipped += 1
                continue
        if skipped:
            logger.warning("Skipped %d malformed rows in %s", skipped, p)


def load_trace(csv_path: str | Path) -> list[TraceSample]:
    """Load a trace sorted by timestamp."""
    return sorted(iter_trace_samples(csv_path), key=lambda s: s.timestamp_ms)
