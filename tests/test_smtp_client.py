"""Tests for the SMTP transport and mail sender capability."""

# pylint: disable=protected-access

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock

import pytest

from remind_mail.core.config import SmtpSettings
from remind_mail.core.models import Delivered, Failed, FailureKind, SmtpCredentials
from remind_mail.transport import smtp_client
from remind_mail.transport.smtp_client import (
    EmailMessage,
    NotConfiguredError,
    SmtpClient,
    SmtpMailSender,
    render_html,
)


def _credentials(port: int, *, secure: bool = False) -> SmtpCredentials:
    return SmtpCredentials(
        email=" me@example.com ",
        password=" secret ",
        smtp_host="smtp.example.com",
        smtp_port=port,
        secure=secure,
    )


@pytest.fixture
def connection(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace both smtplib connection classes with one shared mock."""
    mock_connection = MagicMock()
    mock_connection.send_message.return_value = {}
    mock_connection.has_extn.return_value = False
    mock_connection.noop.return_value = (250, b"OK")
    plain = MagicMock(return_value=mock_connection)
    implicit = MagicMock(return_value=mock_connection)
    monkeypatch.setattr(smtp_client.smtplib, "SMTP", plain)
    monkeypatch.setattr(smtp_client.smtplib, "SMTP_SSL", implicit)
    mock_connection.plain_factory = plain
    mock_connection.implicit_factory = implicit
    return mock_connection


def _send(port: int, *, secure: bool = False):
    return SmtpMailSender(SmtpSettings()).send(
        "me@example.com",
        ["a@x.com", "b@y.com"],
        "Pay rent",
        "Line one\nLine two",
        _credentials(port, secure=secure),
    )


def test_port_465_uses_implicit_tls(connection: MagicMock) -> None:
    result = _send(465)

    assert isinstance(result, Delivered)
    assert result.message_id.endswith("@example.com>")
    connection.implicit_factory.assert_called_once()
    connection.plain_factory.assert_not_called()
    connection.starttls.assert_not_called()
    connection.connect.assert_called_once_with("smtp.example.com", 465)
    connection.login.assert_called_once_with("me@example.com", "secret")
    connection.quit.assert_called_once()


def test_port_587_requires_starttls(connection: MagicMock) -> None:
    result = _send(587)

    assert isinstance(result, Delivered)
    connection.plain_factory.assert_called_once_with(timeout=15)
    connection.starttls.assert_called_once()


def test_other_port_honours_secure_flag(connection: MagicMock) -> None:
    _send(2525, secure=True)
    connection.implicit_factory.assert_called_once()
    connection.starttls.assert_not_called()


def test_other_port_without_secure_flag_stays_plain(connection: MagicMock) -> None:
    _send(2525)
    connection.plain_factory.assert_called_once()
    connection.starttls.assert_not_called()


def test_timeouts_follow_connection_phases(connection: MagicMock) -> None:
    _send(587)

    timeouts = [call.args[0] for call in connection.sock.settimeout.call_args_list]
    assert timeouts == [10, 20]


def test_message_has_all_recipients_and_html_alternative(
    connection: MagicMock,
) -> None:
    _send(465)

    message = connection.send_message.call_args.args[0]
    assert message["To"] == "a@x.com, b@y.com"
    assert message["From"] == "me@example.com"
    assert message["Subject"] == "Pay rent"
    parts = [part.get_content_type() for part in message.get_payload()]
    assert parts == ["text/plain", "text/html"]


def test_render_html_escapes_and_breaks_lines() -> None:
    assert render_html("a < b\nc") == "<p>a &lt; b<br>c</p>"


def test_incomplete_credentials_fail_without_network(connection: MagicMock) -> None:
    sender = SmtpMailSender()
    result = sender.send(
        "", ["a@x.com"], "T", "B", SmtpCredentials(email="me@example.com")
    )

    assert isinstance(result, Failed)
    assert result.kind is FailureKind.NOT_CONFIGURED
    connection.plain_factory.assert_not_called()
    connection.implicit_factory.assert_not_called()

    missing = sender.send("", ["a@x.com"], "T", "B", None)
    assert isinstance(missing, Failed)
    assert missing.kind is FailureKind.NOT_CONFIGURED


def test_client_rejects_incomplete_credentials() -> None:
    with pytest.raises(NotConfiguredError):
        SmtpClient(SmtpCredentials(smtp_host="smtp.example.com"))


def test_authentication_failure_is_transport_failure(connection: MagicMock) -> None:
    connection.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad")

    result = _send(465)

    assert isinstance(result, Failed)
    assert result.kind is FailureKind.TRANSPORT
    assert "authentication failed" in result.reason
    connection.close.assert_called_once()


def test_connection_timeout_is_transport_failure(connection: MagicMock) -> None:
    connection.connect.side_effect = TimeoutError("timed out")

    result = _send(587)

    assert isinstance(result, Failed)
    assert "Network error" in result.reason


def test_refused_recipients_fail_the_attempt(connection: MagicMock) -> None:
    connection.send_message.return_value = {"b@y.com": (550, b"no such user")}

    result = _send(465)

    assert isinstance(result, Failed)
    assert "refused" in result.reason


def test_send_verified_checks_the_session(connection: MagicMock) -> None:
    connection.noop.return_value = (421, b"closing")
    message = EmailMessage(
        sender="me@example.com", to=("a@x.com",), subject="T", body="B"
    )

    result = SmtpMailSender().send_verified(message, _credentials(465))

    assert isinstance(result, Failed)
    assert "verify failed" in result.reason
    connection.send_message.assert_not_called()
