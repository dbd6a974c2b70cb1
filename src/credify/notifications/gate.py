"""
Notification gate.

Runs once per dwell event and decides whether the user should see a card
recommendation. In order:

1. notifications disabled, or no cards in the catalog -> nothing
2. inside the cooldown window (`cooldown_ms` since the last notification) -> nothing
3. another evaluation still in flight -> nothing
4. look up merchants around the dwell anchor (bounded by a timeout); failures count
   as "no merchants"
5. rank cards for the nearest merchant, build the notification, persist the
   cooldown anchor, emit to the sink

The cooldown timestamp is only written when a notification is actually built, so a
failed or empty lookup never burns the user's next window. `cancel()` invalidates
in-flight evaluations: their results are dropped instead of emitted. The same
happens when notifications are switched off while a lookup is running.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Sequence

from credify.config.settings import Settings
from credify.core.geo import sort_by_distance
from credify.core.state import PreferencesContext
from credify.core.time import Clock, system_clock, to_epoch_ms
from credify.domain.models import Card, Coordinate, Merchant, Notification
from credify.ingestion.places_client import MerchantLookup
from credify.notifications.sinks import NotificationSink
from credify.scoring.rewards import estimate_earnings, rank_cards

logger = logging.getLogger(__name__)

GateOutcome = Literal[
    "emitted",
    "disabled",
    "no_cards",
    "cooldown",
    "busy",
    "no_merchants",
    "no_card_match",
    "cancelled",
]


@dataclass(frozen=True)
class GateResult:
    outcome: GateOutcome
    notification: Notification | None = None
    merchant: Merchant | None = None


class NotificationGate:
    """Cooldown + eligibility checks around merchant lookup and card scoring."""

    def __init__(
        self,
        *,
        preferences: PreferencesContext,
        lookup: MerchantLookup,
        cards: Sequence[Card] | Callable[[], Sequence[Card]],
        sink: NotificationSink,
        settings: Settings | None = None,
        held_card_ids: Iterable[str] = (),
        clock: Clock = system_clock,
    ):
        self._preferences = preferences
        self._lookup = lookup
        self._cards = cards if callable(cards) else (lambda: cards)
        self._sink = sink
        self._settings = settings or Settings()
        self._held_card_ids = frozenset(held_card_ids)
        self._clock = clock
        self._busy = False
        self._generation = 0

    @property
    def busy(self) -> bool:
        return self._busy

    def cancel(self) -> None:
        """Drop the result of any evaluation currently in flight."""
        self._generation += 1

    async def evaluate(self, anchor: Coordinate, elapsed_seconds: int) -> GateResult:
        prefs = self._preferences.current
        if not prefs.notifications_enabled:
            logger.debug("Notifications disabled; ignoring dwell")
            return GateResult("disabled")

        cards = list(self._cards())
        if not cards:
            logger.info("No cards available for recommendations")
            return GateResult("no_cards")

        now_ms = to_epoch_ms(self._clock())
        last = prefs.last_notification_timestamp
        if last is not None and now_ms - last < prefs.cooldown_ms:
            remaining_min = -(-(prefs.cooldown_ms - (now_ms - last)) // 60_000)
            logger.info("Cooldown active: %d minutes remaining", remaining_min)
            return GateResult("cooldown")

        # Check-and-set happens without an intervening await, so it is atomic on the loop.
        if self._busy:
            logger.info("Gate busy; skipping overlapping dwell event")
            return GateResult("busy")
        self._busy = True
        generation = self._generation

        try:
            logger.info("Dwell of %ss detected; looking up nearby merchants", elapsed_seconds)
            merchants = await self._lookup_merchants(anchor)
            if generation != self._generation:
                logger.info("Dwell evaluation cancelled; discarding lookup result")
                return GateResult("cancelled")
            # Preferences may have changed while the lookup was in flight.
            if not self._preferences.current.notifications_enabled:
                logger.info("Notifications disabled during lookup; discarding result")
                return GateResult("cancelled")
            if not merchants:
                logger.info("No nearby merchants found")
                return GateResult("no_merchants")

            merchant = sort_by_distance(anchor, merchants, key=lambda m: m.location)[0]
            ranked = rank_cards(
                merchant,
                cards,
                held_card_ids=self._held_card_ids,
                settings=self._settings.scoring,
            )
            if not ranked:
                return GateResult("no_card_match", merchant=merchant)

            best = ranked[0]
            notification = Notification(
                merchant=merchant,
                recommended_card=best,
                reason=f"Best rewards for {merchant.category}",
                estimated_earnings=estimate_earnings(merchant, best, settings=self._settings.scoring),
                timestamp=now_ms,
            )
            # Keyed to generation, not to whether the sink shows it.
            self._preferences.record_notification(now_ms)
            logger.info(
                "Recommending %s at %s (%s)", best.name, merchant.name, notification.estimated_earnings
            )
            self._sink.emit(notification)
            return GateResult("emitted", notification=notification, merchant=merchant)
        finally:
            self._busy = False

    async def _lookup_merchants(self, anchor: Coordinate) -> list[Merchant]:
        radius = self._settings.gate.lookup_radius_m
        timeout = self._settings.gate.lookup_timeout_seconds
        try:
            return list(
                await asyncio.wait_for(
                    self._lookup.lookup(anchor.latitude, anchor.longitude, radius),
                    timeout=timeout,
                )
            )
        except asyncio.TimeoutError:
            logger.warning("Merchant lookup timed out after %.0fs", timeout)
            return []
        except Exception:
            # Any lookup failure is treated as "no merchants"; it must not reach the detector.
            logger.warning("Merchant lookup failed", exc_info=True)
            return []
