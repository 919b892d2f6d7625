"""Best-effort publish/subscribe channel for scheduler state changes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RemindersUpdatedEvent:
    """The stored reminder set changed; observers should re-read it."""

    reason: str


@dataclass(frozen=True, slots=True)
class DeliveryFailedEvent:
    """A send attempt failed. ``reminder_id`` is ``None`` for test messages."""

    reminder_id: str | None
    reminder_title: str | None
    error: str


Event = RemindersUpdatedEvent | DeliveryFailedEvent
Subscriber = Callable[[Event], None]


class NotificationChannel:
    """Fan events out to subscribers; a failing subscriber never blocks others."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.warning("Notification subscriber failed", exc_info=True)


__all__ = [
    "DeliveryFailedEvent",
    "Event",
    "NotificationChannel",
    "RemindersUpdatedEvent",
    "Subscriber",
]
