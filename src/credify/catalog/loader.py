"""
Card and merchant catalog loaders.

The card catalog is a local JSON file (default: `data/catalogs/cards.json`) listing
cards and their reward lines. Merchant files use the same shape the places lookup
returns and back the offline `StaticMerchantLookup`. Both are validated into typed
Pydantic models so scoring code can assume a consistent shape.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter

from credify.core.env import resolve_project_path
from credify.domain.models import Card, Merchant


_CARDS_ADAPTER = TypeAdapter(list[Card])
_MERCHANTS_ADAPTER = TypeAdapter(list[Merchant])


def load_cards(path: str | Path) -> list[Card]:
    """Load and validate a card catalog JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    return _CARDS_ADAPTER.validate_python(payload)


def load_merchants(path: str | Path) -> list[Merchant]:
    """Load and validate a merchant list JSON file (a list, or `{"places": [...]}`)."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("places") or []
    return _MERCHANTS_ADAPTER.validate_python(payload)
