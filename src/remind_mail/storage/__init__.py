"""Flat-file persistence for reminders, user settings, and recipient history."""

from .json_store import (
    HISTORY_LIMIT,
    JsonEmailHistoryRepository,
    JsonReminderRepository,
    JsonSettingsRepository,
    StorageUnavailable,
    atomic_write_json,
)

__all__ = [
    "HISTORY_LIMIT",
    "JsonEmailHistoryRepository",
    "JsonReminderRepository",
    "JsonSettingsRepository",
    "StorageUnavailable",
    "atomic_write_json",
]
