# src/credify/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/credify/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `GOOGLE_PLACES_API_KEY`, `CREDIFY_LOG_LEVEL`)
- an external YAML file via `CREDIFY_CONFIG_PATH`

Design rule:
- Tuning knobs live in YAML, not hard-coded in business logic.

These are process defaults. The user-adjustable knobs (dwell threshold/radius,
cooldown, notifications on/off) are seeded from here into `NotificationPreferences`,
which is persisted and changed at runtime independently of this file.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from credify.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `credify.config`."""
    text = resources.files("credify.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "Credify"
    log_level: str = "INFO"


class MonitorSettings(BaseModel):
    tick_interval_seconds: float = Field(1.0, gt=0)
    dwell_threshold_seconds: float = Field(300, gt=0)
    dwell_radius_meters: float = Field(30, gt=0)


class GateSettings(BaseModel):
    notifications_enabled: bool = True
    cooldown_ms: int = Field(30 * 60 * 1000, ge=0)
    lookup_radius_m: float = Field(100, gt=0)
    lookup_timeout_seconds: float = Field(10, gt=0)


class ScoringSettings(BaseModel):
    top_n_default: int = Field(3, ge=1)
    fuzzy_match_weight: float = Field(0.8, ge=0)
    generic_bonus_min_rate: float = Field(0.02, ge=0)
    generic_bonus_weight: float = Field(0.1, ge=0)
    held_card_bonus: float = Field(5.0, ge=0)
    default_spend: float = Field(30, ge=0)
    default_rate: float = Field(0.01, ge=0)
    # Empty means "use the built-in table" in `credify.scoring.rewards`.
    category_match_terms: dict[str, list[str]] = Field(default_factory=dict)


class PlacesSettings(BaseModel):
    base_url: str = "https://places.googleapis.com/v1/places:searchNearby"
    api_key: str | None = None
    max_result_count: int = Field(20, ge=1, le=20)
    http_timeout_seconds: float = Field(10, gt=0)
    field_mask: str = (
        "places.id,places.displayName,places.types,places.location,places.formattedAddress"
    )
    included_types: list[str] = Field(default_factory=list)
    default_category: str = "shopping"
    estimated_spend: dict[str, float] = Field(default_factory=dict)


class CatalogSettings(BaseModel):
    path: str = "data/catalogs/cards.json"


class StateSettings(BaseModel):
    backend: Literal["json", "memory"] = "json"
    path: str = ".credify/preferences.json"


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    gate: GateSettings = Field(default_factory=GateSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    places: PlacesSettings = Field(default_factory=PlacesSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    state: StateSettings = Field(default_factory=StateSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("CREDIFY_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    state_path = os.getenv("CREDIFY_STATE_PATH")
    if state_path:
        data.setdefault("state", {})["path"] = state_path

    catalog_path = os.getenv("CREDIFY_CATALOG_PATH")
    if catalog_path:
        data.setdefault("catalog", {})["path"] = catalog_path

    places_key = os.getenv("GOOGLE_PLACES_API_KEY")
    if places_key:
        data.setdefault("places", {})["api_key"] = places_key

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("CREDIFY_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
