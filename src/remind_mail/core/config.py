"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class StorageSettings(BaseModel):
    """Settings for local flat-file persistence."""

    data_dir: Path = Field(
        default=Path("./remind_mail_data"),
        description="Directory holding reminders, settings, and history files",
    )

    @property
    def reminders_path(self) -> Path:
        """Location of the reminders document."""
        return self.data_dir / "reminders.json"

    @property
    def reminders_lock_path(self) -> Path:
        """Lock file serializing writers of the reminders document."""
        return self.data_dir / "reminders.lock"

    @property
    def settings_path(self) -> Path:
        """Location of the user settings document."""
        return self.data_dir / "settings.json"

    @property
    def history_path(self) -> Path:
        """Location of the recipient history document."""
        return self.data_dir / "emailHistory.json"


class SchedulerSettings(BaseModel):
    """Settings controlling the reconciliation cadence."""

    enabled: bool = Field(
        default=True, description="Run the background scheduler with the web app"
    )
    interval_seconds: float = Field(
        default=10, ge=1, le=3600, description="Seconds between ticks"
    )
    startup_delay_seconds: float = Field(
        default=5, ge=0, description="Delay before the warm-up tick"
    )
    grace_period_hours: float = Field(
        default=24, gt=0, description="Hours a fully sent reminder is kept"
    )
    max_concurrent_sends: int = Field(
        default=4, ge=1, description="Deliveries attempted in parallel per tick"
    )


class SmtpSettings(BaseModel):
    """Transport timeouts applied to every SMTP attempt."""

    connect_timeout: float = Field(default=15, gt=0, description="TCP connect")
    handshake_timeout: float = Field(
        default=10, gt=0, description="Greeting, TLS, and authentication"
    )
    transfer_timeout: float = Field(default=20, gt=0, description="Message data")
    debug: bool = Field(default=False, description="Enable smtplib debug output")


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Emit key=value log lines"
    )


class WebSettings(BaseModel):
    """Bind address for the HTTP API."""

    host: str = Field(default="127.0.0.1", description="Listen address")
    port: int = Field(default=8000, ge=1, le=65535, description="Listen port")


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    web: WebSettings = Field(default_factory=WebSettings)


ENV_PREFIX = "REMIND_MAIL_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "LoggingSettings",
    "SchedulerSettings",
    "SmtpSettings",
    "StorageSettings",
    "WebSettings",
    "load_app_settings",
]
