"""Wire stores, transport, and scheduler into a service container."""

from __future__ import annotations

from datetime import timedelta

from filelock import FileLock

from .core import AppSettings, ServiceContainer
from .scheduler import NotificationChannel, PeriodicRunner, ReminderScheduler
from .service import ReminderService
from .storage import (
    JsonEmailHistoryRepository,
    JsonReminderRepository,
    JsonSettingsRepository,
)
from .transport import SmtpMailSender


def _scheduler(container: ServiceContainer) -> ReminderScheduler:
    settings: AppSettings = container.resolve("settings")
    settings_store: JsonSettingsRepository = container.resolve("settings_store")
    settings.storage.data_dir.mkdir(parents=True, exist_ok=True)
    return ReminderScheduler(
        container.resolve("reminder_store"),
        container.resolve("mail_sender"),
        container.resolve("notifications"),
        lambda: settings_store.load().email,
        grace_period=timedelta(hours=settings.scheduler.grace_period_hours),
        max_concurrent_sends=settings.scheduler.max_concurrent_sends,
        store_lock=FileLock(str(settings.storage.reminders_lock_path)),
    )


def _runner(container: ServiceContainer) -> PeriodicRunner:
    settings: AppSettings = container.resolve("settings")
    scheduler: ReminderScheduler = container.resolve("scheduler")
    return PeriodicRunner(
        scheduler.run_tick,
        interval=settings.scheduler.interval_seconds,
        startup_delay=settings.scheduler.startup_delay_seconds,
    )


def _service(container: ServiceContainer) -> ReminderService:
    return ReminderService(
        container.resolve("scheduler"),
        container.resolve("settings_store"),
        container.resolve("history_store"),
        container.resolve("mail_sender"),
        container.resolve("notifications"),
        runner=container.resolve("runner"),
    )


def build_container(settings: AppSettings) -> ServiceContainer:
    """Register every application service against ``settings``."""
    container = ServiceContainer()
    storage = settings.storage
    container.register("settings", lambda _: settings)
    container.register(
        "reminder_store", lambda _: JsonReminderRepository(storage.reminders_path)
    )
    container.register(
        "settings_store", lambda _: JsonSettingsRepository(storage.settings_path)
    )
    container.register(
        "history_store", lambda _: JsonEmailHistoryRepository(storage.history_path)
    )
    container.register("mail_sender", lambda _: SmtpMailSender(settings.smtp))
    container.register("notifications", lambda _: NotificationChannel())
    container.register("scheduler", _scheduler)
    container.register("runner", _runner)
    container.register("service", _service)
    return container


def build_service(settings: AppSettings) -> ReminderService:
    """Return the boundary facade for ``settings``."""
    return build_container(settings).resolve("service")


__all__ = ["build_container", "build_service"]
