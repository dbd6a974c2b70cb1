import asyncio
import threading

from credify.core.state import InMemoryPreferencesStore, PreferencesContext
from credify.core.time import ManualClock
from credify.domain.models import Card, Coordinate, Merchant, NotificationPreferences
from credify.ingestion.location import TIMEOUT, PushLocationSource
from credify.ingestion.places_client import StaticMerchantLookup
from credify.monitoring.dwell import DwellDetector
from credify.monitoring.monitor import LocationMonitor
from credify.notifications.gate import NotificationGate
from credify.notifications.sinks import CollectingSink

HERE = Coordinate(latitude=40.7589, longitude=-73.9851)
NEARBY = Coordinate(latitude=40.75891, longitude=-73.9851)

CHIPOTLE = Merchant(id="merchant-1", name="Chipotle", category="dining", location=HERE, estimated_spend=15)
CARDS = [Card(id="dining-card", name="Dining Card", reward_rates={"dining": 0.03})]

TICK = 0.01


def _build(clock: ManualClock, **prefs):
    preferences = PreferencesContext(InMemoryPreferencesStore(), NotificationPreferences(**prefs))
    source = PushLocationSource()
    sink = CollectingSink()
    detector = DwellDetector(preferences=preferences, clock=clock)
    gate = NotificationGate(
        preferences=preferences,
        lookup=StaticMerchantLookup([CHIPOTLE]),
        cards=CARDS,
        sink=sink,
        clock=clock,
    )
    monitor = LocationMonitor(
        source=source,
        detector=detector,
        gate=gate,
        preferences=preferences,
        tick_interval_seconds=TICK,
    )
    return monitor, source, sink, preferences


def test_tick_loop_detects_dwell_and_runs_gate():
    async def scenario():
        clock = ManualClock(1_760_000_000)
        monitor, source, sink, prefs = _build(clock)
        async with monitor:
            source.push(HERE)
            clock.advance(60)
            source.push(NEARBY)
            clock.advance(250)
            # No new samples: only the periodic tick can notice the threshold.
            await asyncio.sleep(TICK * 10)
            status = monitor.status()
        return status, sink, prefs, monitor, source

    status, sink, prefs, monitor, source = asyncio.run(scenario())

    assert status.is_dwelling is True
    assert status.dwell_seconds == 310
    assert sink.current is not None
    assert sink.current.merchant.id == "merchant-1"
    assert monitor.last_gate_result.outcome == "emitted"
    assert prefs.current.last_notification_timestamp == 1_760_000_310_000
    assert source.subscriber_count == 0
    assert monitor.running is False


def test_samples_from_other_threads_are_marshalled_onto_loop():
    async def scenario():
        clock = ManualClock(0)
        monitor, source, _, _ = _build(clock)
        await monitor.start()
        loop_thread = threading.get_ident()
        seen_threads = []

        original = monitor._detector.on_sample

        def recording(coord, now=None):
            seen_threads.append(threading.get_ident())
            original(coord, now)

        monitor._detector.on_sample = recording

        worker = threading.Thread(target=source.push, args=(HERE,))
        worker.start()
        worker.join()
        await asyncio.sleep(TICK * 3)
        anchor = monitor.status().anchor
        await monitor.stop()
        return seen_threads, loop_thread, anchor

    seen_threads, loop_thread, anchor = asyncio.run(scenario())

    assert seen_threads == [loop_thread]
    assert anchor == HERE


def test_disabling_notifications_pauses_monitoring():
    async def scenario():
        clock = ManualClock(0)
        monitor, source, sink, prefs = _build(clock)
        async with monitor:
            source.push(HERE)
            prefs.update({"notifications_enabled": False})
            await asyncio.sleep(TICK * 5)
            paused = monitor.status()

            clock.advance(600)
            source.push(HERE)
            await asyncio.sleep(TICK * 5)
            still_paused = monitor.status()

            prefs.update({"notifications_enabled": True})
            await asyncio.sleep(TICK * 5)
            source.push(NEARBY)
            resumed = monitor.status()
        return paused, still_paused, resumed, sink

    paused, still_paused, resumed, sink = asyncio.run(scenario())

    assert paused.enabled is False and paused.anchor is None
    assert still_paused.anchor is None
    assert resumed.enabled is True
    assert resumed.anchor == NEARBY
    assert resumed.dwell_seconds == 0
    assert sink.current is None


def test_disable_between_ticks_drops_in_flight_recommendation():
    class SlowLookup:
        def __init__(self):
            self.started = asyncio.Event()
            self.release = asyncio.Event()

        async def lookup(self, latitude, longitude, radius_m):
            self.started.set()
            await self.release.wait()
            return [CHIPOTLE]

    async def scenario():
        clock = ManualClock(0)
        lookup = SlowLookup()
        prefs = PreferencesContext(InMemoryPreferencesStore(), NotificationPreferences())
        source = PushLocationSource()
        sink = CollectingSink()
        detector = DwellDetector(preferences=prefs, clock=clock)
        gate = NotificationGate(preferences=prefs, lookup=lookup, cards=CARDS, sink=sink, clock=clock)
        # A long tick so the monitor cannot notice the change before the lookup returns.
        monitor = LocationMonitor(
            source=source, detector=detector, gate=gate, preferences=prefs, tick_interval_seconds=5.0
        )
        async with monitor:
            source.push(HERE)
            clock.advance(300)
            source.push(NEARBY)
            await asyncio.wait_for(lookup.started.wait(), timeout=1.0)
            prefs.update({"notifications_enabled": False})
            lookup.release.set()
            for _ in range(20):
                await asyncio.sleep(0)
            result = monitor.last_gate_result
        return result, sink, prefs

    result, sink, prefs = asyncio.run(scenario())

    assert result is not None and result.outcome == "cancelled"
    assert sink.history == []
    assert prefs.current.last_notification_timestamp is None


def test_location_errors_reach_detector_without_resetting():
    async def scenario():
        clock = ManualClock(0)
        monitor, source, _, _ = _build(clock)
        async with monitor:
            source.push(HERE)
            source.push_error(TIMEOUT)
            return monitor.status()

    status = asyncio.run(scenario())

    assert status.anchor == HERE
    assert status.error.code == TIMEOUT
    assert status.error.message == "Location request timed out."
