"""Integration tests for the FastAPI web application."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from remind_mail.core.config import AppSettings, SchedulerSettings, StorageSettings
from remind_mail.scheduler import DeliveryFailedEvent, RemindersUpdatedEvent
from remind_mail.web import create_app
from remind_mail.web.app import format_event


@pytest.fixture
def client(tmp_path: Path) -> TestClient:
    settings = AppSettings(
        storage=StorageSettings(data_dir=tmp_path),
        scheduler=SchedulerSettings(enabled=False),
    )
    return TestClient(create_app(settings))


def _future(hours: int = 1) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def test_create_list_and_delete_reminder(client: TestClient) -> None:
    response = client.post(
        "/api/reminders",
        json={
            "title": "Pay rent",
            "emails": ["a@x.com", "b@y.com"],
            "scheduledTimes": [_future()],
        },
    )
    assert response.status_code == 201
    reminder_id = response.json()["id"]

    listing = client.get("/api/reminders").json()["reminders"]
    assert len(listing) == 1
    assert listing[0]["id"] == reminder_id
    assert listing[0]["emails"] == ["a@x.com", "b@y.com"]
    assert listing[0]["sentTimes"] == []
    assert listing[0]["deletionTime"] is None
    assert listing[0]["state"] == "active"

    assert client.get("/api/email-history").json()["emails"] == [
        "a@x.com",
        "b@y.com",
    ]

    deleted = client.delete(f"/api/reminders/{reminder_id}")
    assert deleted.status_code == 200
    assert client.get("/api/reminders").json()["reminders"] == []


def test_invalid_reminder_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/reminders",
        json={"title": "", "emails": ["a@x.com"], "scheduledTimes": [_future()]},
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Title is required"}


def test_corrupt_reminders_file_reports_unavailable(
    client: TestClient, tmp_path: Path
) -> None:
    (tmp_path / "reminders.json").write_text("{oops", encoding="utf-8")

    response = client.get("/api/reminders")

    assert response.status_code == 503
    assert response.json()["success"] is False

    cleared = client.delete("/api/reminders")
    assert cleared.status_code == 200
    assert client.get("/api/reminders").json()["reminders"] == []


def test_settings_round_trip_hides_password(
    client: TestClient, tmp_path: Path
) -> None:
    payload = {
        "theme": "dark",
        "email": {
            "email": "me@example.com",
            "password": "secret",
            "smtpHost": "smtp.example.com",
            "smtpPort": 465,
            "secure": True,
        },
    }
    assert client.put("/api/settings", json=payload).status_code == 200

    fetched = client.get("/api/settings").json()
    assert fetched["theme"] == "dark"
    assert fetched["email"]["smtpHost"] == "smtp.example.com"
    assert fetched["email"]["password"] == ""
    assert fetched["email"]["passwordSet"] is True

    payload["email"]["password"] = ""
    payload["theme"] = "light"
    assert client.put("/api/settings", json=payload).status_code == 200
    stored = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert stored["email"]["password"] == "secret"
    assert stored["theme"] == "light"


def test_test_email_without_settings_fails(client: TestClient) -> None:
    response = client.post("/api/settings/test-email", json={"email": "a@x.com"})

    assert response.status_code == 400
    assert response.json()["message"].startswith("Email not configured")


def test_manual_check_runs_a_tick(client: TestClient) -> None:
    response = client.post("/api/reminders/check")

    assert response.status_code == 200
    assert response.json()["message"].startswith("Reminder check complete")


def test_email_history_endpoints(client: TestClient) -> None:
    assert (
        client.post(
            "/api/email-history", json={"emails": ["Me@Example.com"]}
        ).status_code
        == 200
    )
    assert client.get("/api/email-history").json()["emails"] == ["me@example.com"]
    assert client.delete("/api/email-history").status_code == 200
    assert client.get("/api/email-history").json()["emails"] == []


def test_format_event_frames() -> None:
    failure = format_event(
        DeliveryFailedEvent(reminder_id="1", reminder_title="T", error="boom")
    )
    assert failure.startswith("event: email-error\n")
    assert '"reminderId": "1"' in failure
    assert failure.endswith("\n\n")

    updated = format_event(RemindersUpdatedEvent(reason="tick"))
    assert updated == 'event: reminders-updated\ndata: {"reason": "tick"}\n\n'
