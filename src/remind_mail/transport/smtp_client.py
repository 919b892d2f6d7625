"""SMTP client for sending emails with proper error handling and security."""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from collections.abc import Sequence
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from ..core.config import SmtpSettings
from ..core.interfaces import MailSender
from ..core.models import (
    Delivered,
    DeliveryResult,
    Failed,
    FailureKind,
    SmtpCredentials,
)

LOGGER = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
STARTTLS_PORT = 587

NOT_CONFIGURED_MESSAGE = (
    "Email not configured. Please fill Email, Password, SMTP Host, and Port "
    "in Settings."
)


@dataclass(frozen=True, slots=True)
class EmailMessage:
    """Outgoing email message representation.

    Attributes:
        sender: From address
        to: Recipient addresses, all placed on one message
        subject: Email subject line
        body: Plain text body; an HTML alternative is derived from it
    """

    sender: str
    to: tuple[str, ...]
    subject: str
    body: str


class SmtpError(Exception):
    """Base exception for SMTP operations."""


class NotConfiguredError(SmtpError):
    """Raised before any network call when credentials are incomplete."""


class TransportFailure(SmtpError):
    """Raised when connecting, negotiating, authenticating, or sending fails."""


def _tls_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


def render_html(body: str) -> str:
    """Return the HTML alternative for a plain text body."""
    return "<p>" + html.escape(body).replace("\n", "<br>") + "</p>"


class SmtpClient:
    """SMTP client for sending emails.

    Provides context manager interface for automatic connection management.
    The security mode follows the port: 465 uses implicit TLS, 587 requires
    STARTTLS, and any other port honours ``credentials.secure``.

    Example:
        >>> with SmtpClient(credentials, SmtpSettings()) as client:
        ...     client.send(message)
    """

    def __init__(
        self, credentials: SmtpCredentials, settings: SmtpSettings | None = None
    ) -> None:
        """Initialize SMTP client with account and timeout configuration.

        Raises:
            NotConfiguredError: If any credential field is missing
        """
        if not credentials.is_complete:
            raise NotConfiguredError(NOT_CONFIGURED_MESSAGE)
        self._credentials = credentials
        self._settings = settings or SmtpSettings()
        self._connection: smtplib.SMTP | None = None

    def __enter__(self) -> SmtpClient:
        """Enter context manager, establishing connection."""
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing connection."""
        self.disconnect()

    @property
    def port(self) -> int:
        return int(self._credentials.smtp_port or 0)

    def _uses_implicit_tls(self) -> bool:
        if self.port == IMPLICIT_TLS_PORT:
            return True
        if self.port == STARTTLS_PORT:
            return False
        return self._credentials.secure

    def _set_timeout(self, seconds: float) -> None:
        sock = getattr(self._connection, "sock", None)
        if sock is not None:
            sock.settimeout(seconds)

    def connect(self) -> None:
        """Establish SMTP connection and authenticate.

        Raises:
            TransportFailure: If connection, negotiation, or authentication fails
        """
        host = self._credentials.smtp_host.strip()
        LOGGER.info("Attempting SMTP connection to %s:%d", host, self.port)

        try:
            if self._uses_implicit_tls():
                LOGGER.debug("Using implicit TLS for SMTP connection")
                self._connection = smtplib.SMTP_SSL(
                    timeout=self._settings.connect_timeout, context=_tls_context()
                )
            else:
                self._connection = smtplib.SMTP(
                    timeout=self._settings.connect_timeout
                )
            if self._settings.debug:
                self._connection.set_debuglevel(1)
            self._connection.connect(host, self.port)

            self._set_timeout(self._settings.handshake_timeout)
            self._connection.ehlo()
            if not self._uses_implicit_tls():
                if self.port == STARTTLS_PORT or self._connection.has_extn(
                    "starttls"
                ):
                    LOGGER.debug("Upgrading SMTP connection with STARTTLS")
                    self._connection.starttls(context=_tls_context())
                    self._connection.ehlo()

            username = self._credentials.email.strip()
            LOGGER.debug("Authenticating as %s", username)
            self._connection.login(username, self._credentials.password.strip())
            self._set_timeout(self._settings.transfer_timeout)
            LOGGER.info("Connected to SMTP server: %s", host)

        except smtplib.SMTPAuthenticationError as exc:
            LOGGER.error("SMTP authentication failed: %s", exc)
            self._abort()
            raise TransportFailure(f"SMTP authentication failed: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("SMTP error: %s", exc)
            self._abort()
            raise TransportFailure(f"SMTP error: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error connecting to SMTP server: %s", exc)
            self._abort()
            raise TransportFailure(f"Network error: {exc}") from exc

    def _abort(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._connection = None

    def disconnect(self) -> None:
        """Close SMTP connection gracefully."""
        if self._connection:
            try:
                self._connection.quit()
                LOGGER.debug("SMTP connection closed")
            except (smtplib.SMTPException, OSError) as exc:
                LOGGER.warning("Error closing SMTP connection: %s", exc)
            finally:
                self._connection = None

    def verify(self) -> None:
        """Check the live connection responds.

        Raises:
            TransportFailure: If not connected or the server rejects NOOP
        """
        if not self._connection:
            raise TransportFailure("Not connected to SMTP server")
        try:
            code, reply = self._connection.noop()
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportFailure(f"SMTP verify failed: {exc}") from exc
        if code != 250:
            raise TransportFailure(f"SMTP verify failed: {code} {reply!r}")

    def send(self, message: EmailMessage) -> str:
        """Send an email message and return its Message-ID.

        Raises:
            TransportFailure: If sending fails, any recipient is refused,
                or not connected
        """
        if not self._connection:
            raise TransportFailure("Not connected to SMTP server")

        LOGGER.info(
            "Preparing to send email to %s: %s", ", ".join(message.to), message.subject
        )

        try:
            mime_message = self._build_mime_message(message)
            LOGGER.debug("Email headers: %s", dict(mime_message.items()))
            refused = self._connection.send_message(mime_message)

            if refused:
                LOGGER.warning("Some recipients were refused: %s", refused)
                raise TransportFailure(f"Some recipients were refused: {refused}")

            LOGGER.info(
                "Email sent successfully to %s: %s",
                ", ".join(message.to),
                message.subject,
            )
            return str(mime_message["Message-ID"])

        except smtplib.SMTPRecipientsRefused as exc:
            LOGGER.error("All recipients refused: %s", exc)
            raise TransportFailure(f"All recipients refused: {exc}") from exc
        except smtplib.SMTPSenderRefused as exc:
            LOGGER.error("Sender refused: %s", exc)
            raise TransportFailure(f"Sender refused: {exc}") from exc
        except smtplib.SMTPDataError as exc:
            LOGGER.error("SMTP data error: %s", exc)
            raise TransportFailure(f"SMTP data error: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("Failed to send email: %s", exc)
            raise TransportFailure(f"Failed to send email: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error while sending email: %s", exc)
            raise TransportFailure(f"Network error: {exc}") from exc

    def _build_mime_message(self, message: EmailMessage) -> MIMEMultipart:
        """Build a plain text + HTML MIME message."""
        mime_msg = MIMEMultipart("alternative")
        mime_msg["From"] = message.sender
        mime_msg["To"] = ", ".join(message.to)
        mime_msg["Subject"] = message.subject
        domain = message.sender.rpartition("@")[2] or None
        mime_msg["Message-ID"] = make_msgid(domain=domain)

        mime_msg.attach(MIMEText(message.body, "plain", "utf-8"))
        mime_msg.attach(MIMEText(render_html(message.body), "html", "utf-8"))
        return mime_msg


class SmtpMailSender(MailSender):
    """Mail sender capability: one connection and one attempt per call."""

    def __init__(self, settings: SmtpSettings | None = None) -> None:
        self._settings = settings or SmtpSettings()

    def send(
        self,
        sender: str,
        recipients: Sequence[str],
        subject: str,
        body: str,
        credentials: SmtpCredentials | None,
    ) -> DeliveryResult:
        if credentials is None or not credentials.is_complete:
            return Failed(NOT_CONFIGURED_MESSAGE, FailureKind.NOT_CONFIGURED)
        if not recipients:
            return Failed("No email recipients specified", FailureKind.TRANSPORT)

        message = EmailMessage(
            sender=sender or credentials.email.strip(),
            to=tuple(recipients),
            subject=subject,
            body=body,
        )
        try:
            with SmtpClient(credentials, self._settings) as client:
                message_id = client.send(message)
        except NotConfiguredError as exc:
            return Failed(str(exc), FailureKind.NOT_CONFIGURED)
        except SmtpError as exc:
            return Failed(str(exc), FailureKind.TRANSPORT)
        return Delivered(message_id=message_id)

    def send_verified(
        self, message: EmailMessage, credentials: SmtpCredentials | None
    ) -> DeliveryResult:
        """Connect, verify the session, then send; used for test messages."""
        if credentials is None or not credentials.is_complete:
            return Failed(NOT_CONFIGURED_MESSAGE, FailureKind.NOT_CONFIGURED)
        try:
            with SmtpClient(credentials, self._settings) as client:
                client.verify()
                message_id = client.send(message)
        except NotConfiguredError as exc:
            return Failed(str(exc), FailureKind.NOT_CONFIGURED)
        except SmtpError as exc:
            return Failed(str(exc), FailureKind.TRANSPORT)
        return Delivered(message_id=message_id)


__all__ = [
    "EmailMessage",
    "NotConfiguredError",
    "SmtpClient",
    "SmtpError",
    "SmtpMailSender",
    "TransportFailure",
    "render_html",
]
