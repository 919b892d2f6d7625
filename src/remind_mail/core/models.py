"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class Reminder:
    """A titled message owed to its recipients at each scheduled instant.

    ``scheduled_times`` only ever holds instants that were in the future at
    the last reconciliation. Instants that came due move to
    ``pending_times`` until a delivery succeeds, then to ``sent_times``.
    """

    id: str
    title: str
    description: str | None
    recipients: list[str]
    scheduled_times: list[datetime]
    created_at: datetime
    sent_times: list[datetime] = field(default_factory=list)
    pending_times: list[datetime] = field(default_factory=list)
    deletion_time: datetime | None = None

    @property
    def body(self) -> str:
        """Text sent to recipients; falls back to the title."""
        return self.description or self.title


class ReminderState(str, Enum):
    """Lifecycle position of a stored reminder."""

    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"


class FailureKind(str, Enum):
    """Classification of a failed delivery attempt."""

    NOT_CONFIGURED = "not_configured"
    TRANSPORT = "transport"


@dataclass(frozen=True, slots=True)
class Delivered:
    """The transport accepted the message."""

    message_id: str


@dataclass(frozen=True, slots=True)
class Failed:
    """The delivery attempt did not complete."""

    reason: str
    kind: FailureKind = FailureKind.TRANSPORT


DeliveryResult = Delivered | Failed


@dataclass(slots=True)
class TickReport:
    """Outcome summary for one reconciliation pass."""

    started_at: datetime
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    grace_started: int = 0
    purged: int = 0
    changed: bool = False
    skipped: bool = False
    aborted: bool = False
    error: str | None = None


class SmtpCredentials(BaseModel):
    """SMTP account used to send reminders, stored with the user settings."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(default="", description="Account and From address")
    password: str = Field(default="", description="Account secret")
    smtp_host: str = Field(default="", alias="smtpHost")
    smtp_port: int | None = Field(default=587, alias="smtpPort")
    secure: bool = Field(
        default=False, description="Implicit TLS on ports other than 465/587"
    )

    @property
    def is_complete(self) -> bool:
        """Whether every field needed for a delivery attempt is present."""
        return bool(
            self.email.strip()
            and self.password.strip()
            and self.smtp_host.strip()
            and self.smtp_port
        )


class UserSettings(BaseModel):
    """Singleton preferences edited by the user at runtime."""

    model_config = ConfigDict(populate_by_name=True)

    theme: Literal["auto", "light", "dark"] = "auto"
    email: SmtpCredentials = Field(default_factory=SmtpCredentials)


__all__ = [
    "Delivered",
    "DeliveryResult",
    "Failed",
    "FailureKind",
    "Reminder",
    "ReminderState",
    "SmtpCredentials",
    "TickReport",
    "UserSettings",
]
