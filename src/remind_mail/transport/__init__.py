"""SMTP transport and the mail sender capability."""

from .smtp_client import (
    EmailMessage,
    NotConfiguredError,
    SmtpClient,
    SmtpError,
    SmtpMailSender,
    TransportFailure,
)

__all__ = [
    "EmailMessage",
    "NotConfiguredError",
    "SmtpClient",
    "SmtpError",
    "SmtpMailSender",
    "TransportFailure",
]
