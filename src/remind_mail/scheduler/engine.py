"""Reconciliation engine driving every reminder through its lifecycle.

A tick loads the stored reminders, moves instants that came due from
``scheduled_times`` into ``pending_times``, attempts one delivery per pending
instant, records successes in ``sent_times``, opens the grace period for
reminders with nothing left to send, purges reminders whose grace period has
elapsed, and writes the result back in one atomic save.

Only instants present in ``sent_times`` are considered delivered, so a crash
anywhere before the save leaves every obligation in place for the next tick.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from threading import Lock
from typing import TypeVar

from filelock import BaseFileLock, Timeout

from ..core.datetime_utils import utc_now
from ..core.interfaces import MailSender, ReminderRepository
from ..core.models import (
    Delivered,
    DeliveryResult,
    Failed,
    Reminder,
    ReminderState,
    SmtpCredentials,
    TickReport,
)
from ..storage import StorageUnavailable
from .notifications import (
    DeliveryFailedEvent,
    Event,
    NotificationChannel,
    RemindersUpdatedEvent,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_GRACE_PERIOD = timedelta(hours=24)

CredentialsProvider = Callable[[], SmtpCredentials | None]


def reminder_state(reminder: Reminder) -> ReminderState:
    """Return the lifecycle state implied by the stored fields."""
    if reminder.deletion_time is not None:
        return ReminderState.GRACE_PERIOD
    return ReminderState.ACTIVE


def promote_due_times(reminder: Reminder, now: datetime) -> None:
    """Move instants at or before ``now`` out of the forward-looking set.

    Due instants that were already sent are dropped; the rest become
    pending obligations.
    """
    future: list[datetime] = []
    for scheduled in reminder.scheduled_times:
        if scheduled > now:
            future.append(scheduled)
        elif scheduled not in reminder.sent_times:
            if scheduled not in reminder.pending_times:
                reminder.pending_times.append(scheduled)
    reminder.scheduled_times = future
    reminder.pending_times = [
        pending for pending in reminder.pending_times if pending not in reminder.sent_times
    ]


def record_delivery(reminder: Reminder, instant: datetime) -> None:
    """Mark ``instant`` as sent. Repeated calls are no-ops."""
    if instant in reminder.pending_times:
        reminder.pending_times.remove(instant)
    if instant not in reminder.sent_times:
        reminder.sent_times.append(instant)


def is_fully_sent(reminder: Reminder) -> bool:
    return (
        not reminder.scheduled_times
        and not reminder.pending_times
        and bool(reminder.sent_times)
    )


class ReminderScheduler:
    """Single writer of the reminder store.

    Ticks and user mutations share one lock so they never interleave on the
    backing file. When a ``store_lock`` is given it is held as well, which
    serializes writers in other processes sharing the same data directory. Deliveries inside a tick fan out to a bounded thread pool;
    their results are merged on the tick's own thread.
    """

    def __init__(
        self,
        repository: ReminderRepository,
        sender: MailSender,
        notifications: NotificationChannel,
        credentials_provider: CredentialsProvider,
        *,
        grace_period: timedelta = DEFAULT_GRACE_PERIOD,
        max_concurrent_sends: int = 4,
        clock: Callable[[], datetime] = utc_now,
        store_lock: BaseFileLock | None = None,
    ) -> None:
        if max_concurrent_sends <= 0:
            raise ValueError("max_concurrent_sends must be positive")
        self._repository = repository
        self._sender = sender
        self._notifications = notifications
        self._credentials_provider = credentials_provider
        self._grace_period = grace_period
        self._max_concurrent_sends = max_concurrent_sends
        self._clock = clock
        self._lock = Lock()
        self._store_lock = store_lock

    @property
    def repository(self) -> ReminderRepository:
        return self._repository

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def run_tick(self, now: datetime | None = None) -> TickReport:
        """Run one reconciliation pass unless another is already in progress."""
        if not self._lock.acquire(blocking=False):
            LOGGER.info("Reminder check already in progress; skipping")
            return TickReport(started_at=now or self._clock(), skipped=True)
        events: list[Event] = []
        try:
            if not self._acquire_store(blocking=False):
                LOGGER.info("Reminder store locked by another process; skipping")
                return TickReport(started_at=now or self._clock(), skipped=True)
            try:
                report = self._reconcile(now or self._clock(), events)
            finally:
                self._release_store()
        finally:
            self._lock.release()
        self._publish(events)
        return report

    def mutate(self, change: Callable[[list[Reminder]], T], reason: str) -> T:
        """Apply ``change`` to the stored reminders and save them.

        Waits for any running tick. ``change`` edits the list in place and
        its return value is passed back. Raises :class:`StorageUnavailable`
        when the store cannot be read or written; nothing is saved then.
        """
        with self._lock:
            self._acquire_store(blocking=True)
            try:
                reminders = self._repository.load()
                result = change(reminders)
                self._repository.save(reminders)
            finally:
                self._release_store()
        self._publish([RemindersUpdatedEvent(reason=reason)])
        return result

    def reset(self, reason: str = "cleared") -> None:
        """Overwrite the store with an empty list without reading it first.

        Recovers a store that no longer parses.
        """
        with self._lock:
            self._acquire_store(blocking=True)
            try:
                self._repository.save([])
            finally:
                self._release_store()
        self._publish([RemindersUpdatedEvent(reason=reason)])

    def _acquire_store(self, *, blocking: bool) -> bool:
        if self._store_lock is None:
            return True
        try:
            self._store_lock.acquire(timeout=-1 if blocking else 0)
        except Timeout:
            return False
        return True

    def _release_store(self) -> None:
        if self._store_lock is not None:
            self._store_lock.release()

    def _publish(self, events: Sequence[Event]) -> None:
        for event in events:
            self._notifications.publish(event)

    def _resolve_credentials(self) -> SmtpCredentials | None:
        try:
            return self._credentials_provider()
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.error("Unable to load SMTP credentials", exc_info=True)
            return None

    def _attempt(
        self, reminder: Reminder, credentials: SmtpCredentials | None
    ) -> DeliveryResult:
        try:
            return self._sender.send(
                credentials.email.strip() if credentials else "",
                reminder.recipients,
                reminder.title,
                reminder.body,
                credentials,
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error(
                "Mail sender raised for reminder %s", reminder.id, exc_info=True
            )
            return Failed(str(exc))

    def _deliver(
        self, jobs: list[tuple[Reminder, datetime]]
    ) -> list[DeliveryResult]:
        credentials = self._resolve_credentials()
        if len(jobs) == 1:
            return [self._attempt(jobs[0][0], credentials)]
        workers = min(self._max_concurrent_sends, len(jobs))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="remind-send"
        ) as pool:
            return list(
                pool.map(lambda job: self._attempt(job[0], credentials), jobs)
            )

    def _reconcile(self, now: datetime, events: list[Event]) -> TickReport:
        report = TickReport(started_at=now)
        try:
            stored = self._repository.load()
        except StorageUnavailable as exc:
            LOGGER.error("Reminder check aborted, store unreadable: %s", exc)
            report.aborted = True
            report.error = str(exc)
            return report

        reminders = copy.deepcopy(stored)
        for reminder in reminders:
            promote_due_times(reminder, now)

        jobs = [
            (reminder, instant)
            for reminder in reminders
            for instant in reminder.pending_times
        ]
        results = self._deliver(jobs) if jobs else []
        report.attempted = len(jobs)

        for (reminder, instant), result in zip(jobs, results):
            if isinstance(result, Delivered):
                record_delivery(reminder, instant)
                report.delivered += 1
                LOGGER.info(
                    "Sent reminder %s (%s) for %s as %s",
                    reminder.id,
                    reminder.title,
                    instant.isoformat(),
                    result.message_id,
                )
            else:
                report.failed += 1
                LOGGER.warning(
                    "Failed to send reminder %s (%s) for %s: %s",
                    reminder.id,
                    reminder.title,
                    instant.isoformat(),
                    result.reason,
                )
                events.append(
                    DeliveryFailedEvent(
                        reminder_id=reminder.id,
                        reminder_title=reminder.title,
                        error=result.reason,
                    )
                )

        kept: list[Reminder] = []
        for reminder in reminders:
            if reminder.deletion_time is None and is_fully_sent(reminder):
                reminder.deletion_time = now + self._grace_period
                report.grace_started += 1
                LOGGER.info(
                    "Reminder %s fully sent; deleting after %s",
                    reminder.id,
                    reminder.deletion_time.isoformat(),
                )
            if reminder.deletion_time is not None and reminder.deletion_time <= now:
                report.purged += 1
                LOGGER.info("Purging reminder %s (%s)", reminder.id, reminder.title)
                continue
            kept.append(reminder)

        report.changed = kept != stored
        if report.changed:
            try:
                self._repository.save(kept)
            except StorageUnavailable as exc:
                LOGGER.error("Reminder check aborted, store unwritable: %s", exc)
                report.aborted = True
                report.error = str(exc)
                report.changed = False
                return report
            events.append(RemindersUpdatedEvent(reason="tick"))

        LOGGER.log(
            logging.INFO if report.attempted or report.changed else logging.DEBUG,
            "Reminder check done: attempted=%s delivered=%s failed=%s "
            "grace_started=%s purged=%s",
            report.attempted,
            report.delivered,
            report.failed,
            report.grace_started,
            report.purged,
        )
        return report


__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "ReminderScheduler",
    "is_fully_sent",
    "promote_due_times",
    "record_delivery",
    "reminder_state",
]
