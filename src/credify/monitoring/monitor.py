"""
Location monitor: the scheduling glue around `DwellDetector`.

Responsibilities:
- subscribe to a `LocationSource` and forward samples/errors to the detector,
- run the periodic `tick()` loop (default every second),
- start a `NotificationGate` evaluation as its own task on each dwell event,
- follow the user's `notifications_enabled` preference at runtime,
- tear everything down on `stop()` (unsubscribe, cancel ticks and in-flight gate work).

Everything that touches detector state runs on one asyncio event loop. Samples pushed
from other threads are marshalled onto the loop, so ticks and samples never race.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from credify.core.state import PreferencesContext
from credify.domain.models import Coordinate
from credify.ingestion.location import LocationSource
from credify.monitoring.dwell import DwellDetector, DwellStatus
from credify.notifications.gate import GateResult, NotificationGate

logger = logging.getLogger(__name__)


class LocationMonitor:
    def __init__(
        self,
        *,
        source: LocationSource,
        detector: DwellDetector,
        gate: NotificationGate | None = None,
        preferences: PreferencesContext | None = None,
        tick_interval_seconds: float = 1.0,
    ):
        self._source = source
        self._detector = detector
        self._gate = gate
        self._preferences = preferences
        self._tick_interval = float(tick_interval_seconds)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None
        self._handle: int | None = None
        self._tick_task: asyncio.Task | None = None
        self._gate_tasks: set[asyncio.Task] = set()
        self.last_gate_result: GateResult | None = None

        if gate is not None:
            detector.on_dwell_detected = self._on_dwell

    @property
    def running(self) -> bool:
        return self._tick_task is not None

    def status(self) -> DwellStatus:
        return self._detector.status()

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        if self._wants_enabled():
            self._detector.enable()
        else:
            self._detector.disable()
        self._handle = self._source.subscribe(self._on_sample, self._on_error)
        self._tick_task = self._loop.create_task(self._tick_loop())
        logger.info("Location monitor started (tick every %.1fs)", self._tick_interval)

    async def stop(self) -> None:
        if self._handle is not None:
            self._source.unsubscribe(self._handle)
            self._handle = None

        tasks = [t for t in (self._tick_task, *self._gate_tasks) if t is not None]
        self._tick_task = None
        if self._gate is not None:
            self._gate.cancel()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._gate_tasks.clear()

        self._detector.disable()
        logger.info("Location monitor stopped")

    async def __aenter__(self) -> "LocationMonitor":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def _wants_enabled(self) -> bool:
        return self._preferences is None or self._preferences.current.notifications_enabled

    def _sync_enabled(self) -> None:
        wanted = self._wants_enabled()
        if wanted and not self._detector.enabled:
            logger.info("Notifications enabled; dwell monitoring resumed")
            self._detector.enable()
        elif not wanted and self._detector.enabled:
            logger.info("Notifications disabled; dwell monitoring paused")
            self._detector.disable()
            if self._gate is not None:
                self._gate.cancel()

    async def _tick_loop(self) -> None:
        while True:
            self._sync_enabled()
            self._detector.tick()
            await asyncio.sleep(self._tick_interval)

    def _call_on_loop(self, fn, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        if threading.get_ident() == self._loop_thread:
            fn(*args)
        else:
            loop.call_soon_threadsafe(fn, *args)

    def _on_sample(self, coordinate: Coordinate) -> None:
        self._call_on_loop(self._detector.on_sample, coordinate)

    def _on_error(self, code: int, message: str) -> None:
        self._call_on_loop(self._detector.on_error, code, message)

    def _on_dwell(self, anchor: Coordinate, elapsed_seconds: int) -> None:
        # Runs on the loop thread (detector calls are marshalled there); never blocks.
        if self._gate is None or self._loop is None:
            return
        task = self._loop.create_task(self._gate.evaluate(anchor, elapsed_seconds))
        self._gate_tasks.add(task)
        task.add_done_callback(self._gate_done)

    def _gate_done(self, task: asyncio.Task) -> None:
        self._gate_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Notification gate failed", exc_info=exc)
            return
        self.last_gate_result = task.result()
