"""JSON document stores backed by atomically replaced files."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any

from pydantic import ValidationError

from ..core.datetime_utils import parse_datetime, serialize_datetime
from ..core.interfaces import (
    EmailHistoryRepository,
    ReminderRepository,
    SettingsRepository,
)
from ..core.models import Reminder, UserSettings

LOGGER = logging.getLogger(__name__)

HISTORY_LIMIT = 50


class StorageUnavailable(RuntimeError):
    """Raised when a backing file cannot be read, parsed, or written."""


def atomic_write_json(path: Path, payload: Any) -> None:
    """Write ``payload`` so readers see either the old or the new document.

    The data goes to a temporary file in the same directory which then
    replaces ``path`` with :func:`os.replace`.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise


def _read_json(path: Path, default: Any) -> Any:
    """Return the parsed document, creating it from ``default`` when missing."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        LOGGER.info("Initialising missing store %s", path)
        try:
            atomic_write_json(path, default)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot create {path}: {exc}") from exc
        return default
    except json.JSONDecodeError as exc:
        raise StorageUnavailable(f"{path} is corrupt: {exc}") from exc
    except OSError as exc:
        raise StorageUnavailable(f"Cannot read {path}: {exc}") from exc


def _write_json(path: Path, payload: Any) -> None:
    try:
        atomic_write_json(path, payload)
    except OSError as exc:
        raise StorageUnavailable(f"Cannot write {path}: {exc}") from exc


def _unique_times(raw: Iterable[Any]) -> list[datetime]:
    """Parse timestamps, dropping repeats while keeping first-seen order."""
    seen: set[datetime] = set()
    times: list[datetime] = []
    for value in raw:
        parsed = parse_datetime(str(value))
        if parsed is None or parsed in seen:
            continue
        seen.add(parsed)
        times.append(parsed)
    return times


def reminder_from_record(record: dict[str, Any]) -> Reminder:
    """Build a :class:`Reminder` from a stored record of any known shape."""
    recipients = record.get("emails")
    if not recipients:
        legacy = record.get("email")
        recipients = [legacy] if legacy else []
    if isinstance(recipients, str):
        recipients = [recipients]

    created_at = parse_datetime(record["createdAt"])
    if created_at is None:
        raise ValueError("createdAt is required")

    return Reminder(
        id=str(record["id"]),
        title=str(record["title"]),
        description=record.get("description") or None,
        recipients=[str(address) for address in recipients],
        scheduled_times=_unique_times(record.get("scheduledTimes") or ()),
        sent_times=_unique_times(record.get("sentTimes") or ()),
        pending_times=_unique_times(record.get("pendingTimes") or ()),
        deletion_time=parse_datetime(record.get("deletionTime")),
        created_at=created_at,
    )


def reminder_to_record(reminder: Reminder) -> dict[str, Any]:
    """Serialise a reminder using the camelCase document layout."""
    return {
        "id": reminder.id,
        "title": reminder.title,
        "description": reminder.description,
        "emails": list(reminder.recipients),
        "scheduledTimes": [serialize_datetime(t) for t in reminder.scheduled_times],
        "sentTimes": [serialize_datetime(t) for t in reminder.sent_times],
        "pendingTimes": [serialize_datetime(t) for t in reminder.pending_times],
        "deletionTime": serialize_datetime(reminder.deletion_time),
        "createdAt": serialize_datetime(reminder.created_at),
    }


class JsonReminderRepository(ReminderRepository):
    """Persist reminders as one JSON array."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Reminder]:
        document = _read_json(self._path, [])
        if not isinstance(document, list):
            raise StorageUnavailable(f"{self._path} does not contain a list")
        reminders: list[Reminder] = []
        for index, record in enumerate(document):
            try:
                reminders.append(reminder_from_record(record))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise StorageUnavailable(
                    f"{self._path} entry {index} is unreadable: {exc!r}"
                ) from exc
        return reminders

    def save(self, reminders: Sequence[Reminder]) -> None:
        _write_json(self._path, [reminder_to_record(item) for item in reminders])
        LOGGER.debug("Saved %d reminder(s) to %s", len(reminders), self._path)


class JsonSettingsRepository(SettingsRepository):
    """Persist the user settings singleton."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def load(self) -> UserSettings:
        default = UserSettings().model_dump(mode="json", by_alias=True)
        document = _read_json(self._path, default)
        try:
            return UserSettings.model_validate(document)
        except ValidationError as exc:
            raise StorageUnavailable(f"{self._path} is invalid: {exc}") from exc

    def save(self, settings: UserSettings) -> None:
        _write_json(self._path, settings.model_dump(mode="json", by_alias=True))
        LOGGER.info("Saved user settings to %s", self._path)


class JsonEmailHistoryRepository(EmailHistoryRepository):
    """Keep the most recently used recipient addresses."""

    def __init__(self, path: Path, limit: int = HISTORY_LIMIT) -> None:
        self._path = Path(path)
        self._limit = limit
        self._lock = Lock()

    def load(self) -> list[str]:
        document = _read_json(self._path, [])
        if not isinstance(document, list):
            raise StorageUnavailable(f"{self._path} does not contain a list")
        return [str(item) for item in document]

    def add(self, addresses: Iterable[str] | str) -> list[str]:
        if isinstance(addresses, str):
            addresses = [addresses]
        with self._lock:
            history = self.load()
            for address in addresses:
                normalized = address.strip().lower()
                if normalized and normalized not in history:
                    history.append(normalized)
            history = history[-self._limit :]
            _write_json(self._path, history)
        return history

    def clear(self) -> None:
        with self._lock:
            _write_json(self._path, [])


__all__ = [
    "HISTORY_LIMIT",
    "JsonEmailHistoryRepository",
    "JsonReminderRepository",
    "JsonSettingsRepository",
    "StorageUnavailable",
    "atomic_write_json",
    "reminder_from_record",
    "reminder_to_record",
]
