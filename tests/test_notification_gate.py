import asyncio

from credify.config.settings import GateSettings, Settings
from credify.core.state import InMemoryPreferencesStore, PreferencesContext
from credify.core.time import ManualClock
from credify.domain.models import Card, Coordinate, Merchant, NotificationPreferences
from credify.ingestion.places_client import StaticMerchantLookup
from credify.notifications.gate import NotificationGate
from credify.notifications.sinks import CollectingSink

ANCHOR = Coordinate(latitude=40.7589, longitude=-73.9851)

CHIPOTLE = Merchant(
    id="merchant-1",
    name="Chipotle",
    category="dining",
    location=Coordinate(latitude=40.7589, longitude=-73.9851),
    estimated_spend=15,
)
SHELL = Merchant(
    id="merchant-2",
    name="Shell",
    category="gas",
    location=Coordinate(latitude=40.7593, longitude=-73.9851),
    estimated_spend=40,
)

CARDS = [
    Card(id="gas-card", name="Gas Card", reward_rates={"gas": 0.02}),
    Card(id="dining-card", name="Dining Card", reward_rates={"dining": 0.03}),
]

T0 = 1_760_000_000.0


class StubLookup:
    """Records calls; returns a fixed result or raises."""

    def __init__(self, merchants=(), error: Exception | None = None, delay: float = 0.0):
        self.merchants = list(merchants)
        self.error = error
        self.delay = delay
        self.calls = 0

    async def lookup(self, latitude, longitude, radius_m):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.merchants)


class BlockingLookup:
    """Blocks until released, so tests can interleave gate calls."""

    def __init__(self, merchants):
        self.merchants = merchants
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def lookup(self, latitude, longitude, radius_m):
        self.started.set()
        await self.release.wait()
        return list(self.merchants)


def _prefs(**kwargs) -> PreferencesContext:
    return PreferencesContext(InMemoryPreferencesStore(), NotificationPreferences(**kwargs))


def _gate(prefs, lookup, *, clock, cards=CARDS, sink=None, settings=None):
    return NotificationGate(
        preferences=prefs,
        lookup=lookup,
        cards=cards,
        sink=sink or CollectingSink(),
        settings=settings,
        clock=clock,
    )


def test_emits_for_nearest_merchant_and_records_cooldown():
    clock = ManualClock(T0)
    prefs = _prefs()
    sink = CollectingSink()
    gate = _gate(prefs, StubLookup([SHELL, CHIPOTLE]), clock=clock, sink=sink)

    result = asyncio.run(gate.evaluate(ANCHOR, 300))

    assert result.outcome == "emitted"
    n = sink.current
    assert n.merchant.id == "merchant-1"
    assert n.recommended_card.id == "dining-card"
    assert n.reason == "Best rewards for dining"
    assert n.estimated_earnings == "$0.45 cash back"
    assert n.timestamp == 1_760_000_000_000
    assert prefs.current.last_notification_timestamp == 1_760_000_000_000


def test_second_call_inside_cooldown_is_suppressed():
    clock = ManualClock(T0)
    prefs = _prefs(cooldown_ms=1_800_000)
    sink = CollectingSink()
    lookup = StubLookup([CHIPOTLE])
    gate = _gate(prefs, lookup, clock=clock, sink=sink)

    assert asyncio.run(gate.evaluate(ANCHOR, 300)).outcome == "emitted"
    clock.advance(5 * 60)
    result = asyncio.run(gate.evaluate(ANCHOR, 600))

    assert result.outcome == "cooldown"
    assert result.notification is None
    assert len(sink.history) == 1
    assert lookup.calls == 1
    assert prefs.current.last_notification_timestamp == 1_760_000_000_000


def test_eligible_again_once_cooldown_has_passed():
    clock = ManualClock(T0)
    prefs = _prefs(cooldown_ms=1_800_000)
    gate = _gate(prefs, StubLookup([CHIPOTLE]), clock=clock)

    asyncio.run(gate.evaluate(ANCHOR, 300))
    clock.advance(30 * 60)
    result = asyncio.run(gate.evaluate(ANCHOR, 300))

    assert result.outcome == "emitted"
    assert prefs.current.last_notification_timestamp == 1_760_001_800_000


def test_disabled_and_empty_catalog_do_nothing():
    clock = ManualClock(T0)
    lookup = StubLookup([CHIPOTLE])

    disabled = _gate(_prefs(notifications_enabled=False), lookup, clock=clock)
    assert asyncio.run(disabled.evaluate(ANCHOR, 300)).outcome == "disabled"

    no_cards = _gate(_prefs(), lookup, clock=clock, cards=[])
    assert asyncio.run(no_cards.evaluate(ANCHOR, 300)).outcome == "no_cards"

    assert lookup.calls == 0


def test_cards_can_be_supplied_lazily():
    catalog: list[Card] = []
    gate = _gate(_prefs(), StubLookup([CHIPOTLE]), clock=ManualClock(T0), cards=lambda: catalog)

    assert asyncio.run(gate.evaluate(ANCHOR, 300)).outcome == "no_cards"
    catalog.extend(CARDS)
    assert asyncio.run(gate.evaluate(ANCHOR, 300)).outcome == "emitted"


def test_lookup_failure_does_not_consume_cooldown():
    prefs = _prefs()
    sink = CollectingSink()
    gate = _gate(prefs, StubLookup(error=RuntimeError("quota")), clock=ManualClock(T0), sink=sink)

    result = asyncio.run(gate.evaluate(ANCHOR, 300))

    assert result.outcome == "no_merchants"
    assert sink.current is None
    assert prefs.current.last_notification_timestamp is None
    assert gate.busy is False


def test_empty_lookup_is_no_merchants():
    prefs = _prefs()
    gate = _gate(prefs, StubLookup([]), clock=ManualClock(T0))

    assert asyncio.run(gate.evaluate(ANCHOR, 300)).outcome == "no_merchants"
    assert prefs.current.last_notification_timestamp is None


def test_slow_lookup_times_out_as_no_merchants():
    settings = Settings(gate=GateSettings(lookup_timeout_seconds=0.01))
    prefs = _prefs()
    gate = _gate(prefs, StubLookup([CHIPOTLE], delay=1.0), clock=ManualClock(T0), settings=settings)

    assert asyncio.run(gate.evaluate(ANCHOR, 300)).outcome == "no_merchants"
    assert prefs.current.last_notification_timestamp is None


def test_overlapping_evaluation_is_skipped_while_busy():
    async def scenario():
        lookup = BlockingLookup([CHIPOTLE])
        gate = _gate(_prefs(), lookup, clock=ManualClock(T0))

        first = asyncio.create_task(gate.evaluate(ANCHOR, 300))
        await lookup.started.wait()
        assert gate.busy is True
        second = await gate.evaluate(ANCHOR, 301)

        lookup.release.set()
        return (await first).outcome, second.outcome, gate.busy

    assert asyncio.run(scenario()) == ("emitted", "busy", False)


def test_cancel_discards_in_flight_result():
    async def scenario():
        lookup = BlockingLookup([CHIPOTLE])
        prefs = _prefs()
        sink = CollectingSink()
        gate = _gate(prefs, lookup, clock=ManualClock(T0), sink=sink)

        task = asyncio.create_task(gate.evaluate(ANCHOR, 300))
        await lookup.started.wait()
        gate.cancel()
        lookup.release.set()
        return await task, prefs, sink

    result, prefs, sink = asyncio.run(scenario())

    assert result.outcome == "cancelled"
    assert sink.current is None
    assert prefs.current.last_notification_timestamp is None


def test_disabling_notifications_mid_lookup_discards_result():
    async def scenario():
        lookup = BlockingLookup([CHIPOTLE])
        prefs = _prefs()
        sink = CollectingSink()
        gate = _gate(prefs, lookup, clock=ManualClock(T0), sink=sink)

        task = asyncio.create_task(gate.evaluate(ANCHOR, 300))
        await lookup.started.wait()
        prefs.update({"notifications_enabled": False})
        lookup.release.set()
        return await task, prefs, sink

    result, prefs, sink = asyncio.run(scenario())

    assert result.outcome == "cancelled"
    assert sink.history == []
    assert prefs.current.last_notification_timestamp is None


def test_static_lookup_filters_by_radius():
    far = Merchant(
        id="far",
        name="Far Away",
        category="dining",
        location=Coordinate(latitude=40.7700, longitude=-73.9851),
    )
    lookup = StaticMerchantLookup([far, SHELL, CHIPOTLE])

    found = asyncio.run(lookup.lookup(ANCHOR.latitude, ANCHOR.longitude, 100))

    assert [m.id for m in found] == ["merchant-1", "merchant-2"]
