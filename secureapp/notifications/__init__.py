"""
Outbound email for SecureApp.

This package provides:
- mailer: message type and SMTP / console / in-memory senders
- outbox: non-blocking delivery queue with retries and dead letters
"""
from .mailer import (
    MailMessage,
    MailDeliveryError,
    EmailSender,
    SmtpEmailSender,
    ConsoleEmailSender,
    InMemoryEmailSender,
)
from .outbox import MailOutbox, OutboxEntry, RetryPolicy

__all__ = [
    "MailMessage",
    "MailDeliveryError",
    "EmailSender",
    "SmtpEmailSender",
    "ConsoleEmailSender",
    "InMemoryEmailSender",
    "MailOutbox",
    "OutboxEntry",
    "RetryPolicy",
]
