"""Boundary operations offered to user interfaces.

Every mutating call returns an :class:`Outcome` carrying a human readable
message instead of raising.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from .core.datetime_utils import ensure_utc, parse_datetime, utc_now
from .core.interfaces import EmailHistoryRepository, SettingsRepository
from .core.models import Delivered, Reminder, SmtpCredentials, UserSettings
from .scheduler import (
    DeliveryFailedEvent,
    NotificationChannel,
    PeriodicRunner,
    ReminderScheduler,
)
from .scheduler.notifications import Subscriber
from .storage import StorageUnavailable
from .transport import EmailMessage, SmtpMailSender

LOGGER = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

TEST_EMAIL_SUBJECT = "RemindMail Test Email"
TEST_EMAIL_BODY = (
    "This is a test email from RemindMail. If you received this, your email "
    "configuration is working correctly!"
)


@dataclass(frozen=True)
class Outcome:
    """Result of a boundary operation."""

    success: bool
    message: str


@dataclass(frozen=True)
class CreateOutcome:
    """Result of a reminder creation request."""

    success: bool
    message: str
    reminder_id: str | None = None


class ReminderInputError(ValueError):
    """Raised when a reminder draft fails validation."""


@dataclass(frozen=True)
class ReminderDraft:
    """Validated user input for a new reminder."""

    title: str
    description: str | None
    recipients: tuple[str, ...]
    scheduled_times: tuple[datetime, ...]


def validate_reminder_input(
    title: str | None,
    description: str | None,
    recipients: Sequence[str],
    scheduled_times: Sequence[datetime | str],
    *,
    now: datetime,
) -> ReminderDraft:
    """Normalise raw form input or raise :class:`ReminderInputError`."""
    clean_title = (title or "").strip()
    if not clean_title:
        raise ReminderInputError("Title is required")

    if not recipients:
        raise ReminderInputError("At least one email address is required")
    clean_recipients: list[str] = []
    for index, raw in enumerate(recipients, start=1):
        address = (raw or "").strip()
        if not address:
            raise ReminderInputError(
                f"Please fill in email address {index} or remove it"
            )
        if not EMAIL_PATTERN.match(address):
            raise ReminderInputError(
                f"Please enter a valid email address for email {index}"
            )
        clean_recipients.append(address)

    if not scheduled_times:
        raise ReminderInputError("At least one scheduled time is required")
    clean_times: list[datetime] = []
    for index, raw_time in enumerate(scheduled_times, start=1):
        try:
            instant = (
                ensure_utc(raw_time)
                if isinstance(raw_time, datetime)
                else parse_datetime(str(raw_time))
            )
        except ValueError as exc:
            raise ReminderInputError(f"Invalid date/time for slot {index}") from exc
        if instant is None:
            raise ReminderInputError(f"Invalid date/time for slot {index}")
        if instant <= now:
            raise ReminderInputError(f"Slot {index} must be in the future")
        if instant in clean_times:
            raise ReminderInputError(f"Slot {index} repeats an earlier slot")
        clean_times.append(instant)

    clean_description = (description or "").strip() or None
    return ReminderDraft(
        title=clean_title,
        description=clean_description,
        recipients=tuple(clean_recipients),
        scheduled_times=tuple(clean_times),
    )


def _next_reminder_id(existing: Iterable[Reminder], now: datetime) -> str:
    taken = {reminder.id for reminder in existing}
    candidate = int(now.timestamp() * 1000)
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


class ReminderService:
    """Facade wiring stores, the scheduler, and the mail sender together."""

    def __init__(
        self,
        scheduler: ReminderScheduler,
        settings_repository: SettingsRepository,
        history_repository: EmailHistoryRepository,
        sender: SmtpMailSender,
        notifications: NotificationChannel,
        *,
        runner: PeriodicRunner | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        # pylint: disable=too-many-arguments
        self._scheduler = scheduler
        self._settings_repository = settings_repository
        self._history_repository = history_repository
        self._sender = sender
        self._notifications = notifications
        self._runner = runner
        self._clock = clock

    # Background scheduling --------------------------------------------------
    def start(self) -> None:
        if self._runner is not None:
            self._runner.start()

    def stop(self) -> None:
        if self._runner is not None:
            self._runner.stop()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Receive reminder updates and delivery failures until unsubscribed."""
        return self._notifications.subscribe(callback)

    def check_now(self) -> Outcome:
        """Run a reconciliation pass immediately."""
        report = self._scheduler.run_tick()
        if report.skipped:
            return Outcome(False, "A reminder check is already running.")
        if report.aborted:
            return Outcome(False, f"Reminder check failed: {report.error}")
        message = (
            f"Reminder check complete. Sent {report.delivered} of "
            f"{report.attempted} due email(s)."
        )
        if report.purged:
            message += f" Removed {report.purged} finished reminder(s)."
        return Outcome(True, message)

    # Reminders ---------------------------------------------------------------
    def list_reminders(self) -> list[Reminder]:
        """Return stored reminders. Raises :class:`StorageUnavailable`."""
        return self._scheduler.repository.load()

    def create_reminder(
        self,
        title: str | None,
        description: str | None,
        recipients: Sequence[str],
        scheduled_times: Sequence[datetime | str],
    ) -> CreateOutcome:
        now = self._clock()
        try:
            draft = validate_reminder_input(
                title, description, recipients, scheduled_times, now=now
            )
        except ReminderInputError as exc:
            return CreateOutcome(False, str(exc))

        def _append(reminders: list[Reminder]) -> str:
            reminder = Reminder(
                id=_next_reminder_id(reminders, now),
                title=draft.title,
                description=draft.description,
                recipients=list(draft.recipients),
                scheduled_times=list(draft.scheduled_times),
                created_at=now,
            )
            reminders.append(reminder)
            return reminder.id

        try:
            reminder_id = self._scheduler.mutate(_append, reason="created")
        except StorageUnavailable as exc:
            LOGGER.error("Error saving reminder: %s", exc)
            return CreateOutcome(False, f"Failed to save reminder: {exc}")

        LOGGER.info("Created reminder %s (%s)", reminder_id, draft.title)
        history = self.add_to_email_history(draft.recipients)
        if not history.success:
            LOGGER.warning("Reminder saved but history update failed")
        return CreateOutcome(True, "Reminder saved.", reminder_id=reminder_id)

    def delete_reminder(self, reminder_id: str) -> Outcome:
        def _remove(reminders: list[Reminder]) -> bool:
            before = len(reminders)
            reminders[:] = [item for item in reminders if item.id != reminder_id]
            return len(reminders) != before

        try:
            removed = self._scheduler.mutate(_remove, reason="deleted")
        except StorageUnavailable as exc:
            LOGGER.error("Error deleting reminder %s: %s", reminder_id, exc)
            return Outcome(False, f"Failed to delete reminder: {exc}")
        if not removed:
            return Outcome(False, f"Reminder {reminder_id} not found.")
        LOGGER.info("Deleted reminder %s", reminder_id)
        return Outcome(True, "Reminder deleted.")

    def clear_reminders(self) -> Outcome:
        def _clear(reminders: list[Reminder]) -> int:
            count = len(reminders)
            reminders.clear()
            return count

        try:
            count = self._scheduler.mutate(_clear, reason="cleared")
        except StorageUnavailable as exc:
            # An unreadable store can still be reset.
            LOGGER.warning("Clearing unreadable reminder store: %s", exc)
            try:
                self._scheduler.reset(reason="cleared")
            except StorageUnavailable as save_exc:
                LOGGER.error("Error clearing reminders: %s", save_exc)
                return Outcome(False, f"Failed to clear reminders: {save_exc}")
            count = 0
        return Outcome(True, f"Cleared {count} reminder(s).")

    # Settings ----------------------------------------------------------------
    def get_settings(self) -> UserSettings:
        try:
            return self._settings_repository.load()
        except StorageUnavailable as exc:
            LOGGER.error("Error reading settings, using defaults: %s", exc)
            return UserSettings()

    def save_settings(self, settings: UserSettings) -> Outcome:
        try:
            self._settings_repository.save(settings)
        except StorageUnavailable as exc:
            LOGGER.error("Error saving settings: %s", exc)
            return Outcome(False, f"Failed to save settings: {exc}")
        return Outcome(True, "Settings saved.")

    def current_credentials(self) -> SmtpCredentials:
        return self.get_settings().email

    def send_test_email(self, address: str | None) -> Outcome:
        """Send a one-off message with the current settings; never retried."""
        credentials = self.current_credentials()
        if not credentials.is_complete:
            outcome = Outcome(
                False,
                "Email not configured. Please fill Email, Password, SMTP Host, "
                "and Port in Settings.",
            )
        elif not (address or "").strip():
            outcome = Outcome(False, "Test email address is required.")
        else:
            LOGGER.info("Sending test email to %s", address)
            message = EmailMessage(
                sender=credentials.email.strip(),
                to=((address or "").strip(),),
                subject=TEST_EMAIL_SUBJECT,
                body=TEST_EMAIL_BODY,
            )
            result = self._sender.send_verified(message, credentials)
            if isinstance(result, Delivered):
                return Outcome(
                    True,
                    "Test email sent successfully! Check your inbox (and spam folder).",
                )
            outcome = Outcome(False, result.reason)

        self._notifications.publish(
            DeliveryFailedEvent(
                reminder_id=None, reminder_title=None, error=outcome.message
            )
        )
        return outcome

    # Email history -----------------------------------------------------------
    def get_email_history(self) -> list[str]:
        try:
            return self._history_repository.load()
        except StorageUnavailable as exc:
            LOGGER.error("Error reading email history: %s", exc)
            return []

    def add_to_email_history(self, addresses: Iterable[str] | str) -> Outcome:
        try:
            self._history_repository.add(addresses)
        except StorageUnavailable as exc:
            LOGGER.error("Error saving email history: %s", exc)
            return Outcome(False, f"Failed to save email history: {exc}")
        return Outcome(True, "Email history updated.")

    def clear_email_history(self) -> Outcome:
        try:
            self._history_repository.clear()
        except StorageUnavailable as exc:
            LOGGER.error("Error clearing email history: %s", exc)
            return Outcome(False, f"Failed to clear email history: {exc}")
        return Outcome(True, "Email history cleared.")


__all__ = [
    "CreateOutcome",
    "Outcome",
    "ReminderDraft",
    "ReminderInputError",
    "ReminderService",
    "validate_reminder_input",
]
