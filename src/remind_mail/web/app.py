"""FastAPI application exposing the reminder boundary operations."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, Request, status as http_status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from remind_mail.bootstrap import build_service
from remind_mail.core import AppSettings, load_app_settings
from remind_mail.core.datetime_utils import display_datetime, serialize_datetime
from remind_mail.core.models import Reminder, SmtpCredentials, UserSettings
from remind_mail.scheduler import (
    DeliveryFailedEvent,
    RemindersUpdatedEvent,
    reminder_state,
)
from remind_mail.scheduler.notifications import Event
from remind_mail.service import CreateOutcome, Outcome, ReminderService
from remind_mail.storage import StorageUnavailable

LOGGER = logging.getLogger(__name__)

EVENT_QUEUE_SIZE = 100
KEEPALIVE_SECONDS = 15.0


class ReminderPayload(BaseModel):
    """Request body for creating a reminder."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    description: str | None = None
    emails: list[str] = Field(default_factory=list)
    scheduled_times: list[str] = Field(default_factory=list, alias="scheduledTimes")


class EmailTestPayload(BaseModel):
    """Request body for a one-off test message."""

    email: str | None = None


class HistoryPayload(BaseModel):
    """Addresses to remember for autocomplete."""

    emails: list[str] = Field(default_factory=list)


def create_app(
    settings: AppSettings | None = None, service: ReminderService | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings()
    reminder_service = service or build_service(app_settings)
    app = FastAPI(title="RemindMail")
    app.state.service = reminder_service

    @app.on_event("startup")
    async def startup_event() -> None:
        if app_settings.scheduler.enabled:
            reminder_service.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        reminder_service.stop()

    @app.get("/api/reminders")
    async def list_reminders() -> JSONResponse:
        try:
            reminders = await asyncio.to_thread(reminder_service.list_reminders)
        except StorageUnavailable as exc:
            LOGGER.error("Error reading reminders: %s", exc)
            return JSONResponse(
                {"success": False, "message": f"Reminders unavailable: {exc}"},
                status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return JSONResponse(
            {"reminders": [_serialize_reminder(item) for item in reminders]}
        )

    @app.post("/api/reminders")
    async def create_reminder(payload: ReminderPayload) -> JSONResponse:
        outcome = await asyncio.to_thread(
            reminder_service.create_reminder,
            payload.title,
            payload.description,
            payload.emails,
            payload.scheduled_times,
        )
        return _outcome_response(outcome, success_status=http_status.HTTP_201_CREATED)

    @app.delete("/api/reminders/{reminder_id}")
    async def delete_reminder(reminder_id: str) -> JSONResponse:
        outcome = await asyncio.to_thread(
            reminder_service.delete_reminder, reminder_id
        )
        return _outcome_response(outcome)

    @app.delete("/api/reminders")
    async def clear_reminders() -> JSONResponse:
        outcome = await asyncio.to_thread(reminder_service.clear_reminders)
        return _outcome_response(outcome)

    @app.post("/api/reminders/check")
    async def check_reminders() -> JSONResponse:
        outcome = await asyncio.to_thread(reminder_service.check_now)
        return _outcome_response(outcome, error_status=http_status.HTTP_409_CONFLICT)

    @app.get("/api/settings")
    async def get_settings() -> JSONResponse:
        current = await asyncio.to_thread(reminder_service.get_settings)
        return JSONResponse(_serialize_settings(current))

    @app.put("/api/settings")
    async def save_settings(payload: UserSettings) -> JSONResponse:
        def _save() -> Outcome:
            # A blank password keeps the stored one; the API never echoes it.
            if not payload.email.password:
                stored = reminder_service.get_settings().email.password
                payload.email.password = stored
            return reminder_service.save_settings(payload)

        outcome = await asyncio.to_thread(_save)
        return _outcome_response(outcome)

    @app.post("/api/settings/test-email")
    async def test_email(payload: EmailTestPayload) -> JSONResponse:
        outcome = await asyncio.to_thread(
            reminder_service.send_test_email, payload.email
        )
        return _outcome_response(outcome)

    @app.get("/api/email-history")
    async def get_email_history() -> JSONResponse:
        history = await asyncio.to_thread(reminder_service.get_email_history)
        return JSONResponse({"emails": history})

    @app.post("/api/email-history")
    async def add_email_history(payload: HistoryPayload) -> JSONResponse:
        outcome = await asyncio.to_thread(
            reminder_service.add_to_email_history, payload.emails
        )
        return _outcome_response(outcome)

    @app.delete("/api/email-history")
    async def clear_email_history() -> JSONResponse:
        outcome = await asyncio.to_thread(reminder_service.clear_email_history)
        return _outcome_response(outcome)

    @app.get("/api/events")
    async def events(request: Request) -> StreamingResponse:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)

        def _offer(event: Event) -> None:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

        unsubscribe = reminder_service.subscribe(
            lambda event: loop.call_soon_threadsafe(_offer, event)
        )

        async def generate() -> AsyncIterator[str]:
            try:
                yield ": connected\n\n"
                while not await request.is_disconnected():
                    try:
                        event = await asyncio.wait_for(
                            queue.get(), timeout=KEEPALIVE_SECONDS
                        )
                    except TimeoutError:
                        yield ": keep-alive\n\n"
                        continue
                    yield format_event(event)
            finally:
                unsubscribe()

        return StreamingResponse(generate(), media_type="text/event-stream")

    return app


def _outcome_response(
    outcome: Outcome | CreateOutcome,
    *,
    success_status: int = http_status.HTTP_200_OK,
    error_status: int = http_status.HTTP_400_BAD_REQUEST,
) -> JSONResponse:
    payload: dict[str, Any] = {"success": outcome.success, "message": outcome.message}
    if isinstance(outcome, CreateOutcome) and outcome.reminder_id is not None:
        payload["id"] = outcome.reminder_id
    return JSONResponse(
        payload, status_code=success_status if outcome.success else error_status
    )


def _serialize_reminder(reminder: Reminder) -> dict[str, Any]:
    return {
        "id": reminder.id,
        "title": reminder.title,
        "description": reminder.description,
        "emails": list(reminder.recipients),
        "scheduledTimes": [serialize_datetime(t) for t in reminder.scheduled_times],
        "sentTimes": [serialize_datetime(t) for t in reminder.sent_times],
        "pendingTimes": [serialize_datetime(t) for t in reminder.pending_times],
        "deletionTime": serialize_datetime(reminder.deletion_time),
        "deletionDisplay": display_datetime(reminder.deletion_time),
        "createdAt": serialize_datetime(reminder.created_at),
        "state": reminder_state(reminder).value,
    }


def _serialize_settings(settings: UserSettings) -> dict[str, Any]:
    document = settings.model_dump(mode="json", by_alias=True)
    credentials: SmtpCredentials = settings.email
    document["email"]["password"] = ""
    document["email"]["passwordSet"] = bool(credentials.password)
    return document


def format_event(event: Event) -> str:
    """Render a notification as a server-sent event frame."""
    if isinstance(event, DeliveryFailedEvent):
        name = "email-error"
        data: dict[str, Any] = {
            "reminderId": event.reminder_id,
            "reminderTitle": event.reminder_title,
            "error": event.error,
        }
    elif isinstance(event, RemindersUpdatedEvent):
        name = "reminders-updated"
        data = {"reason": event.reason}
    else:  # pragma: no cover - exhaustive over Event
        raise TypeError(f"Unsupported event {event!r}")
    return f"event: {name}\ndata: {json.dumps(data)}\n\n"


__all__ = ["create_app", "format_event"]
