"""Tests for container wiring shared between processes on one data dir."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Event, Thread

from remind_mail.bootstrap import build_container
from remind_mail.core.config import AppSettings, SchedulerSettings, StorageSettings
from remind_mail.core.models import Delivered, DeliveryResult, Reminder


class GatedSender:
    """Mail sender that blocks inside ``send`` until released."""

    def __init__(self) -> None:
        self.sending = Event()
        self.release = Event()

    def send(self, sender, recipients, subject, body, credentials) -> DeliveryResult:
        self.sending.set()
        self.release.wait(5)
        return Delivered(message_id="<gated@example.com>")

    def send_verified(self, message, credentials) -> DeliveryResult:
        return Delivered(message_id="<gated@example.com>")


def _settings(data_dir: Path) -> AppSettings:
    return AppSettings(
        storage=StorageSettings(data_dir=data_dir),
        scheduler=SchedulerSettings(enabled=False),
    )


def test_edit_from_second_container_survives_running_tick(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    server = build_container(settings)
    cli = build_container(settings)
    sender = GatedSender()
    server.register("mail_sender", lambda _: sender)

    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    server.resolve("reminder_store").save(
        [
            Reminder(
                id="due",
                title="due",
                description=None,
                recipients=["a@x.com"],
                scheduled_times=[past],
                created_at=past,
            )
        ]
    )

    tick = Thread(target=server.resolve("scheduler").run_tick)
    tick.start()
    assert sender.sending.wait(5)

    assert cli.resolve("scheduler").run_tick().skipped

    outcomes = []
    future = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
    edit = Thread(
        target=lambda: outcomes.append(
            cli.resolve("service").create_reminder(
                "Pay rent", None, ["b@y.com"], [future]
            )
        )
    )
    edit.start()
    edit.join(0.3)
    assert edit.is_alive()

    sender.release.set()
    tick.join(5)
    edit.join(5)

    assert outcomes and outcomes[0].success
    stored = {item.title: item for item in cli.resolve("service").list_reminders()}
    assert set(stored) == {"due", "Pay rent"}
    assert stored["due"].sent_times == [past]
