from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Mapping, Protocol

from credify.config.overrides import apply_preference_updates
from credify.config.settings import Settings
from credify.core.env import resolve_project_path
from credify.domain.models import NotificationPreferences

"""
Persisted notification preferences.

The presentation layer keeps the dwell/notification settings and the last
notification timestamp across restarts. Instead of ambient global state, the dwell
detector and the notification gate share one `PreferencesContext`, which:
- loads from a `PreferencesStore` once on start,
- saves back on every change,
- hands out immutable `NotificationPreferences` snapshots.

Stores:
- `InMemoryPreferencesStore`: tests and ephemeral sessions.
- `JsonPreferencesStore`: a single JSON file, written atomically (temp file + replace).
"""

logger = logging.getLogger(__name__)


class PreferencesStore(Protocol):
    def load(self) -> NotificationPreferences | None: ...

    def save(self, preferences: NotificationPreferences) -> None: ...


class InMemoryPreferencesStore:
    """Keeps the last saved preferences in memory."""

    def __init__(self, initial: NotificationPreferences | None = None):
        self._value = initial
        self.saves = 0

    def load(self) -> NotificationPreferences | None:
        return self._value

    def save(self, preferences: NotificationPreferences) -> None:
        self._value = preferences
        self.saves += 1


class JsonPreferencesStore:
    """A file-backed store: `{"saved_at_unix": ..., "value": {...}}`."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> NotificationPreferences | None:
        if not self._path.exists():
            return None
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return NotificationPreferences.model_validate(raw["value"])
        except (OSError, KeyError, TypeError, ValueError):
            # A corrupt file must not block startup; defaults apply and the next save rewrites it.
            logger.warning("Ignoring unreadable preferences file %s", self._path, exc_info=True)
            return None

    def save(self, preferences: NotificationPreferences) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "saved_at_unix": int(time.time()),
            "value": preferences.model_dump(mode="json"),
        }
        tmp = self._path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path)
        finally:
            tmp.unlink(missing_ok=True)


def defaults_from_settings(settings: Settings) -> NotificationPreferences:
    """Seed preferences from configured process defaults."""
    return NotificationPreferences(
        notifications_enabled=settings.gate.notifications_enabled,
        dwell_threshold_seconds=settings.monitor.dwell_threshold_seconds,
        dwell_radius_meters=settings.monitor.dwell_radius_meters,
        cooldown_ms=settings.gate.cooldown_ms,
    )


def build_store(settings: Settings) -> PreferencesStore:
    if settings.state.backend == "memory":
        return InMemoryPreferencesStore()
    return JsonPreferencesStore(resolve_project_path(settings.state.path))


class PreferencesContext:
    """Shared, thread-safe holder of the current `NotificationPreferences`."""

    def __init__(self, store: PreferencesStore, defaults: NotificationPreferences | None = None):
        self._store = store
        self._lock = threading.Lock()
        self._current = store.load() or defaults or NotificationPreferences()

    @classmethod
    def from_settings(cls, settings: Settings, store: PreferencesStore | None = None) -> "PreferencesContext":
        return cls(store or build_store(settings), defaults_from_settings(settings))

    @property
    def current(self) -> NotificationPreferences:
        return self._current

    def update(self, updates: Mapping[str, Any]) -> NotificationPreferences:
        """Apply user-facing updates (whitelisted) and persist them."""
        with self._lock:
            updated = apply_preference_updates(self._current, updates)
            self._store.save(updated)
            self._current = updated
            return updated

    def record_notification(self, timestamp_ms: int) -> None:
        """Persist the cooldown anchor; only the notification gate calls this."""
        with self._lock:
            updated = self._current.model_copy(
                update={"last_notification_timestamp": int(timestamp_ms)}
            )
            # Only a saved anchor counts; a failed save leaves the cooldown untouched.
            self._store.save(updated)
            self._current = updated
