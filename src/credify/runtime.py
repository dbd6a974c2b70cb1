from __future__ import annotations

# Wires the core pieces into one running pipeline:
# push location source -> LocationMonitor/DwellDetector -> NotificationGate -> sink.
#
# The API builds one runtime per process; tests build their own with in-memory
# stores and static lookups so nothing touches disk or the network.

import logging
from dataclasses import dataclass
from typing import Sequence

from credify.catalog.loader import load_cards
from credify.config.settings import Settings, get_settings
from credify.core.state import PreferencesContext, PreferencesStore
from credify.core.time import Clock, system_clock
from credify.domain.models import Card
from credify.ingestion.location import PushLocationSource
from credify.ingestion.places_client import MerchantLookup, PlacesClient
from credify.monitoring.dwell import DwellDetector
from credify.monitoring.monitor import LocationMonitor
from credify.notifications.gate import NotificationGate
from credify.notifications.sinks import CollectingSink, FanoutSink, LoggingSink

logger = logging.getLogger(__name__)


@dataclass
class CredifyRuntime:
    settings: Settings
    preferences: PreferencesContext
    cards: list[Card]
    source: PushLocationSource
    sink: CollectingSink
    detector: DwellDetector
    gate: NotificationGate
    monitor: LocationMonitor


def build_runtime(
    settings: Settings | None = None,
    *,
    store: PreferencesStore | None = None,
    lookup: MerchantLookup | None = None,
    cards: Sequence[Card] | None = None,
    held_card_ids: Sequence[str] = (),
    clock: Clock = system_clock,
) -> CredifyRuntime:
    settings = settings or get_settings()
    preferences = PreferencesContext.from_settings(settings, store)
    if cards is None:
        cards = load_cards(settings.catalog.path)
        logger.info("Loaded %d cards from %s", len(cards), settings.catalog.path)

    source = PushLocationSource()
    sink = CollectingSink()
    detector = DwellDetector(preferences=preferences, clock=clock)
    gate = NotificationGate(
        preferences=preferences,
        lookup=lookup or PlacesClient(settings),
        cards=list(cards),
        sink=FanoutSink(sink, LoggingSink()),
        settings=settings,
        held_card_ids=held_card_ids,
        clock=clock,
    )
    monitor = LocationMonitor(
        source=source,
        detector=detector,
        gate=gate,
        preferences=preferences,
        tick_interval_seconds=settings.monitor.tick_interval_seconds,
    )
    return CredifyRuntime(
        settings=settings,
        preferences=preferences,
        cards=list(cards),
        source=source,
        sink=sink,
        detector=detector,
        gate=gate,
        monitor=monitor,
    )
