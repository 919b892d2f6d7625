"""Tests for the command-line interface."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from remind_mail.bootstrap import build_service
from remind_mail.cli import build_parser, execute
from remind_mail.core.config import AppSettings, StorageSettings


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    return AppSettings(storage=StorageSettings(data_dir=tmp_path))


def _run(settings: AppSettings, *argv: str) -> int:
    args = build_parser().parse_args(list(argv))
    return execute(args, settings, build_service(settings))


def test_add_then_list(settings: AppSettings, capsys: pytest.CaptureFixture[str]) -> None:
    send_at = (datetime.now(timezone.utc) + timedelta(hours=2)).isoformat()

    assert _run(settings, "add", "Water plants", "--to", "a@x.com", "--at", send_at) == 0
    assert _run(settings, "list") == 0

    output = capsys.readouterr().out
    assert "Reminder saved." in output
    assert "Water plants" in output
    assert "active" in output


def test_add_rejects_past_time(settings: AppSettings) -> None:
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()

    assert _run(settings, "add", "Late", "--to", "a@x.com", "--at", past) == 1


def test_info_reports_unconfigured_smtp(
    settings: AppSettings, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(settings) == 0
    assert "SMTP configured: no" in capsys.readouterr().out
