"""
Credify CLI entrypoint.

This CLI is intended for quick local demos and debugging without a frontend:
- `rank`: rank catalog cards for a merchant category,
- `replay`: run a recorded location trace through dwell detection + notifications,
- `lookup`: query the live merchant lookup around a coordinate,
- `serve`: run the HTTP API.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from credify.catalog.loader import load_cards, load_merchants
from credify.config.settings import get_settings
from credify.core.logging import configure_logging
from credify.core.state import InMemoryPreferencesStore, PreferencesContext
from credify.core.time import format_epoch_ms
from credify.domain.models import Coordinate, Merchant
from credify.ingestion.location import load_trace
from credify.ingestion.places_client import PlacesClient, StaticMerchantLookup
from credify.monitoring.replay import replay_trace
from credify.notifications.sinks import CollectingSink
from credify.scoring.explain import explain_payload, one_line_summary
from credify.scoring.rewards import estimate_earnings, rank_cards_detailed, recommendation_reason


def _cmd_rank(args: argparse.Namespace) -> int:
    """Handle the `rank` subcommand."""
    settings = get_settings()
    cards = load_cards(args.cards or settings.catalog.path)
    merchant = Merchant(
        id="cli",
        name=args.merchant_name or args.category,
        category=args.category,
        location=Coordinate(latitude=0.0, longitude=0.0),
        estimated_spend=args.spend,
    )
    ranked = rank_cards_detailed(
        merchant,
        cards,
        held_card_ids=args.held or [],
        top_n=args.top,
        settings=settings.scoring,
    )

    if args.json:
        payload = []
        for scored in ranked:
            item = explain_payload(scored)
            item["estimated_earnings"] = estimate_earnings(merchant, scored.card, settings=settings.scoring)
            payload.append(item)
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    print(f"Best cards for {merchant.category}:")
    for i, scored in enumerate(ranked, start=1):
        earnings = estimate_earnings(merchant, scored.card, settings=settings.scoring)
        reason = recommendation_reason(merchant, scored.card, settings=settings.scoring)
        print(f"{i:>2}. {scored.card.name}  {earnings}  ({reason})")
        print(f"    {one_line_summary(scored)}")
    return 0


def _cmd_replay(args: argparse.Namespace) -> int:
    """Handle the `replay` subcommand."""
    settings = get_settings()
    cards = load_cards(args.cards or settings.catalog.path)
    lookup = StaticMerchantLookup(load_merchants(args.merchants)) if args.merchants else PlacesClient(settings)

    updates: dict[str, Any] = {}
    if args.threshold is not None:
        updates["dwell_threshold_seconds"] = args.threshold
    if args.radius is not None:
        updates["dwell_radius_meters"] = args.radius
    if args.cooldown_ms is not None:
        updates["cooldown_ms"] = args.cooldown_ms
    # Replays never touch the persisted preferences or cooldown.
    preferences = PreferencesContext.from_settings(settings, InMemoryPreferencesStore())
    preferences.update(updates)

    sink = CollectingSink()
    report = asyncio.run(
        replay_trace(
            load_trace(args.trace),
            preferences=preferences,
            lookup=lookup,
            cards=cards,
            sink=sink,
            settings=settings,
            held_card_ids=args.held or [],
        )
    )

    print(f"Samples: {report.samples}  dwell events: {len(report.dwell_events)}")
    for event, result in zip(report.dwell_events, report.gate_results):
        at = format_epoch_ms(int(event.at_s * 1000))
        print(f"- {at} dwell {event.elapsed_seconds}s -> {result.outcome}")
        if result.notification is not None:
            n = result.notification
            print(f"    {n.merchant.name}: use {n.recommended_card.name}, {n.estimated_earnings} ({n.reason})")
    return 0


def _cmd_lookup(args: argparse.Namespace) -> int:
    """Handle the `lookup` subcommand."""
    settings = get_settings()
    merchants = asyncio.run(PlacesClient(settings).lookup(args.lat, args.lng, args.radius))
    print(json.dumps([m.model_dump(mode="json") for m in merchants], ensure_ascii=False, indent=2))
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("credify.api.app:app", host=args.host, port=args.port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Credify CLI."""
    parser = argparse.ArgumentParser(prog="credify")
    parser.add_argument("--log-level", default=None, help="Override CREDIFY_LOG_LEVEL")
    parser.add_argument("--cards", default=None, help="Card catalog JSON (defaults to settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    rank = sub.add_parser("rank", help="Rank cards for a merchant category.")
    rank.add_argument("--category", required=True)
    rank.add_argument("--merchant-name", default=None)
    rank.add_argument("--spend", type=float, default=None, help="Estimated purchase amount")
    rank.add_argument("--top", type=int, default=None)
    rank.add_argument("--held", action="append", default=[], help="Card id the user holds (repeatable)")
    rank.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    rank.set_defaults(func=_cmd_rank)

    rep = sub.add_parser("replay", help="Replay a location trace CSV through dwell detection.")
    rep.add_argument("trace", help="CSV with timestamp_ms,latitude,longitude[,accuracy]")
    rep.add_argument("--merchants", default=None, help="Offline merchant JSON (else Google Places)")
    rep.add_argument("--threshold", type=float, default=None, help="Dwell threshold seconds")
    rep.add_argument("--radius", type=float, default=None, help="Dwell radius meters")
    rep.add_argument("--cooldown-ms", dest="cooldown_ms", type=int, default=None)
    rep.add_argument("--held", action="append", default=[])
    rep.set_defaults(func=_cmd_replay)

    look = sub.add_parser("lookup", help="Look up merchants near a coordinate (Google Places).")
    look.add_argument("--lat", required=True, type=float)
    look.add_argument("--lng", required=True, type=float)
    look.add_argument("--radius", type=float, default=100)
    look.set_defaults(func=_cmd_lookup)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=_cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m credify.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
