"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from .models import DeliveryResult, Reminder, SmtpCredentials, UserSettings


class ReminderRepository(Protocol):
    """Durable record of all reminders."""

    def load(self) -> list[Reminder]:
        """Return every stored reminder in stored order."""
        raise NotImplementedError

    def save(self, reminders: Sequence[Reminder]) -> None:
        """Replace the stored set atomically."""
        raise NotImplementedError


class SettingsRepository(Protocol):
    """Storage for the user settings singleton."""

    def load(self) -> UserSettings:
        """Return the stored settings."""
        raise NotImplementedError

    def save(self, settings: UserSettings) -> None:
        """Persist the settings document."""
        raise NotImplementedError


class EmailHistoryRepository(Protocol):
    """Recently used recipient addresses."""

    def load(self) -> list[str]:
        """Return stored addresses, oldest first."""
        raise NotImplementedError

    def add(self, addresses: Iterable[str]) -> list[str]:
        """Record addresses and return the updated history."""
        raise NotImplementedError

    def clear(self) -> None:
        """Forget every stored address."""
        raise NotImplementedError


class MailSender(Protocol):
    """Performs exactly one delivery attempt per call."""

    def send(
        self,
        sender: str,
        recipients: Sequence[str],
        subject: str,
        body: str,
        credentials: SmtpCredentials | None,
    ) -> DeliveryResult:
        """Attempt delivery and report the result without raising."""
        raise NotImplementedError


__all__ = [
    "EmailHistoryRepository",
    "MailSender",
    "ReminderRepository",
    "SettingsRepository",
]
