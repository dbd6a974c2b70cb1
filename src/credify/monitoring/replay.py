"""
Deterministic trace replay.

Feeds a recorded trace through the same detector + gate pipeline the live monitor
uses, with the trace timestamps as the clock. Between samples the detector is ticked
every `tick_interval_seconds`, like the live one-second timer would.

Used by the `credify replay` command and by end-to-end tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from credify.config.settings import Settings
from credify.core.state import PreferencesContext
from credify.core.time import ManualClock
from credify.domain.models import Card, Coordinate
from credify.ingestion.location import TraceSample
from credify.ingestion.places_client import MerchantLookup
from credify.monitoring.dwell import DwellDetector
from credify.notifications.gate import GateResult, NotificationGate
from credify.notifications.sinks import NotificationSink


@dataclass(frozen=True)
class DwellEvent:
    anchor: Coordinate
    elapsed_seconds: int
    at_s: float


@dataclass
class ReplayReport:
    samples: int = 0
    dwell_events: list[DwellEvent] = field(default_factory=list)
    gate_results: list[GateResult] = field(default_factory=list)

    @property
    def notifications(self):
        return [r.notification for r in self.gate_results if r.notification is not None]


async def replay_trace(
    samples: Sequence[TraceSample],
    *,
    preferences: PreferencesContext,
    lookup: MerchantLookup,
    cards: Sequence[Card],
    sink: NotificationSink,
    settings: Settings | None = None,
    held_card_ids: Sequence[str] = (),
) -> ReplayReport:
    settings = settings or Settings()
    report = ReplayReport()
    if not samples:
        return report

    clock = ManualClock(samples[0].timestamp_s)
    pending: list[DwellEvent] = []

    def on_dwell(anchor: Coordinate, elapsed: int) -> None:
        event = DwellEvent(anchor=anchor, elapsed_seconds=elapsed, at_s=clock())
        report.dwell_events.append(event)
        pending.append(event)

    detector = DwellDetector(
        on_dwell_detected=on_dwell,
        enabled=preferences.current.notifications_enabled,
        preferences=preferences,
        clock=clock,
    )
    gate = NotificationGate(
        preferences=preferences,
        lookup=lookup,
        cards=cards,
        sink=sink,
        settings=settings,
        held_card_ids=held_card_ids,
        clock=clock,
    )
    step = settings.monitor.tick_interval_seconds

    async def drain() -> None:
        while pending:
            event = pending.pop(0)
            report.gate_results.append(await gate.evaluate(event.anchor, event.elapsed_seconds))

    for sample in samples:
        while clock() + step < sample.timestamp_s:
            detector.tick(clock.advance(step))
            await drain()
        clock.set(sample.timestamp_s)
        detector.on_sample(sample.coordinate)
        report.samples += 1
        await drain()

    return report
