from __future__ import annotations

from typing import Any, Mapping

from credify.domain.models import NotificationPreferences

"""
Runtime preference updates (safe subset).

The settings screen and the API send partial updates to the user's notification
preferences. This module:
- validates the update payload against a whitelist,
- merges it onto the current preferences,
- re-validates with Pydantic so ranges (positive radius/threshold) still hold.

`last_notification_timestamp` is deliberately not updatable: only the notification
gate writes the cooldown anchor.
"""

ALLOWED_PREFERENCE_UPDATES: frozenset[str] = frozenset(
    {
        "notifications_enabled",
        "dwell_threshold_seconds",
        "dwell_radius_meters",
        "cooldown_ms",
    }
)


def _filter_updates(updates: Mapping[str, Any]) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in updates.items():
        if key not in ALLOWED_PREFERENCE_UPDATES:
            raise ValueError(f"preference update contains a disallowed key: '{key}'")
        filtered[key] = value
    return filtered


def apply_preference_updates(
    preferences: NotificationPreferences, updates: Mapping[str, Any] | None
) -> NotificationPreferences:
    """Return a new `NotificationPreferences` with `updates` applied.

    Raises:
        ValueError: On a disallowed key.
        pydantic.ValidationError: If a value is out of range (it subclasses ValueError).
    """
    if not updates:
        return preferences

    safe_updates = _filter_updates(updates)
    merged_payload = {**preferences.model_dump(mode="python"), **safe_updates}
    return NotificationPreferences.model_validate(merged_payload)
