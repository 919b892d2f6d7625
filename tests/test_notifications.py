"""Tests for the notification channel and the periodic runner."""

from __future__ import annotations

import threading

from remind_mail.scheduler import (
    DeliveryFailedEvent,
    NotificationChannel,
    PeriodicRunner,
    RemindersUpdatedEvent,
)


def test_failing_subscriber_does_not_block_others() -> None:
    channel = NotificationChannel()
    received: list[object] = []

    def broken(event: object) -> None:
        raise RuntimeError("listener crashed")

    channel.subscribe(broken)
    channel.subscribe(received.append)

    event = DeliveryFailedEvent(reminder_id="1", reminder_title="T", error="x")
    channel.publish(event)

    assert received == [event]


def test_unsubscribe_stops_delivery() -> None:
    channel = NotificationChannel()
    received: list[object] = []
    unsubscribe = channel.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    channel.publish(RemindersUpdatedEvent(reason="tick"))

    assert received == []
    assert channel.subscriber_count == 0


def test_runner_keeps_going_after_task_errors() -> None:
    calls: list[int] = []
    done = threading.Event()

    def task() -> None:
        calls.append(len(calls))
        if len(calls) >= 3:
            done.set()
        raise RuntimeError("tick failed")

    runner = PeriodicRunner(task, interval=0.01, startup_delay=0)
    runner.start()
    try:
        assert done.wait(5)
    finally:
        runner.stop()

    assert len(calls) >= 3
    assert not runner.running


def test_runner_stop_during_startup_delay_skips_task() -> None:
    calls: list[int] = []
    runner = PeriodicRunner(lambda: calls.append(1), interval=60, startup_delay=60)

    runner.start()
    runner.stop()

    assert calls == []
