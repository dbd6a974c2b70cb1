"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- location input (`Coordinate`)
- collaborator output (`Merchant` from the places lookup, `Card` from the catalog)
- the gate's output (`Notification`)
- the persisted, user-adjustable context (`NotificationPreferences`)

Keeping these models in one place helps:
- validation (reject bad inputs at the boundary, not inside the core),
- typed refactors,
- consistent JSON output across CLI/API.
"""

from __future__ import annotations

import re
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RewardKind = Literal["percent", "points"]

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


class Coordinate(BaseModel):
    """A position sample in decimal degrees (accuracy in meters, if known)."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)


def parse_rate_label(label: str) -> tuple[RewardKind, float]:
    """Parse a reward label such as `"3x"`, `"5%"` or `"0.02"`.

    Returns `(kind, rate)`: points labels keep the multiplier (3.0), percentage labels
    become a fraction (0.05), and bare numbers are taken as a fraction already.
    """
    text = label.strip().lower()
    match = _NUMBER_RE.search(text)
    if not match:
        raise ValueError(f"Unrecognized reward rate label: {label!r}")
    value = float(match.group(1))
    if "x" in text:
        return "points", value
    if "%" in text:
        return "percent", value / 100.0
    return "percent", value


class RewardRate(BaseModel):
    """One reward line of a card (e.g. `Dining 3x` or `Gas 2%`)."""

    model_config = ConfigDict(frozen=True)

    category: str
    rate: float = Field(..., ge=0)
    kind: RewardKind = "percent"
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _parse_rate_label(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and isinstance(data.get("rate"), str):
            kind, rate = parse_rate_label(data["rate"])
            return {**data, "rate": rate, "kind": kind}
        return data

    @field_validator("category")
    @classmethod
    def _strip_category(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reward category must not be empty")
        return value

    @property
    def effective_rate(self) -> float:
        """Rate as a cash fraction; one point is valued at one cent."""
        if self.kind == "points":
            return self.rate / 100.0
        return self.rate

    @property
    def label(self) -> str:
        if self.kind == "points":
            return f"{self.rate:g}x"
        return f"{self.rate * 100:g}%"


class Card(BaseModel):
    """A credit card with its reward lines."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    issuer: str | None = None
    annual_fee: float | None = Field(default=None, ge=0)
    reward_rates: list[RewardRate] = Field(default_factory=list)

    @field_validator("reward_rates", mode="before")
    @classmethod
    def _accept_rate_mapping(cls, value: Any) -> Any:
        # Compact form: {"dining": 0.03, "travel": "3x"}.
        if isinstance(value, Mapping):
            return [{"category": k, "rate": v} for k, v in value.items()]
        return value


class Merchant(BaseModel):
    """A nearby point of interest, as returned by a merchant lookup."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str
    location: Coordinate
    address: str | None = None
    estimated_spend: float | None = Field(default=None, ge=0)

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, value: str) -> str:
        return value.strip().lower()


class Notification(BaseModel):
    """A card recommendation ready for the presentation layer."""

    model_config = ConfigDict(frozen=True)

    merchant: Merchant
    recommended_card: Card
    reason: str
    estimated_earnings: str
    timestamp: int


class NotificationPreferences(BaseModel):
    """User-adjustable knobs plus the process-wide cooldown anchor.

    Persisted through a `PreferencesStore`; read by the dwell detector on every
    sample/tick and by the notification gate on every dwell event.
    """

    notifications_enabled: bool = True
    dwell_threshold_seconds: float = Field(300, gt=0)
    dwell_radius_meters: float = Field(30, gt=0)
    cooldown_ms: int = Field(30 * 60 * 1000, ge=0)
    last_notification_timestamp: int | None = None
