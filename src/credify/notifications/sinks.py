"""Notification sinks: where the gate hands finished notifications to the presentation layer."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from credify.domain.models import Notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def emit(self, notification: Notification) -> None: ...


class CollectingSink:
    """Keeps the single live notification plus a bounded history.

    A new notification replaces the live one; `clear()` marks it consumed.
    """

    def __init__(self, max_history: int = 50):
        self._lock = threading.Lock()
        self._current: Notification | None = None
        self._history: list[Notification] = []
        self._max_history = max_history

    @property
    def current(self) -> Notification | None:
        return self._current

    @property
    def history(self) -> list[Notification]:
        with self._lock:
            return list(self._history)

    def emit(self, notification: Notification) -> None:
        with self._lock:
            self._current = notification
            self._history.append(notification)
            del self._history[: -self._max_history]

    def clear(self) -> Notification | None:
        with self._lock:
            cleared, self._current = self._current, None
            return cleared


class LoggingSink:
    """Writes notifications to the log (CLI replay, headless runs)."""

    def emit(self, notification: Notification) -> None:
        logger.info(
            "Use %s at %s (%s): %s",
            notification.recommended_card.name,
            notification.merchant.name,
            notification.reason,
            notification.estimated_earnings,
        )


class FanoutSink:
    """Delivers each notification to several sinks in order."""

    def __init__(self, *sinks: NotificationSink):
        self._sinks = list(sinks)

    def emit(self, notification: Notification) -> None:
        for sink in self._sinks:
            sink.emit(notification)
