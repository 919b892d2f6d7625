"""Reminder reconciliation engine, notifications, and periodic runner."""

from .engine import ReminderScheduler, reminder_state
from .notifications import (
    DeliveryFailedEvent,
    NotificationChannel,
    RemindersUpdatedEvent,
)
from .runner import PeriodicRunner

__all__ = [
    "DeliveryFailedEvent",
    "NotificationChannel",
    "PeriodicRunner",
    "ReminderScheduler",
    "RemindersUpdatedEvent",
    "reminder_state",
]
