"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "utc_now",
    "ensure_utc",
    "serialize_datetime",
    "parse_datetime",
    "display_datetime",
]


def utc_now() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to ISO 8601 in UTC."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string into an aware UTC ``datetime``.

    Accepts the ``Z`` suffix written by JavaScript ``toISOString``.
    """
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def display_datetime(value: datetime | None) -> str | None:
    """Return a user-friendly local-time representation of ``value``."""
    if value is None:
        return None
    return ensure_utc(value).astimezone().strftime("%b %d, %Y %I:%M %p")
