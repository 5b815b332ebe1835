"""
Email senders for SecureApp.

Provides:
- SmtpEmailSender: production delivery over SMTP with STARTTLS
- ConsoleEmailSender: development adapter that logs the message
- InMemoryEmailSender: test double that records messages

Every sender implements `send(message)` and raises MailDeliveryError
when the message could not be handed over.
"""
import logging
import smtplib
import ssl
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional

from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """Raised by a sender when a message could not be delivered."""


@dataclass(frozen=True)
class MailMessage:
    """A rendered email ready for delivery."""
    to: str
    subject: str
    text_body: str
    html_body: Optional[str] = None


class EmailSender(ABC):
    """
    Abstract base for email senders.
    """

    @abstractmethod
    def send(self, message: MailMessage) -> None:
        """
        Deliver a message.

        Raises:
            MailDeliveryError: If delivery failed.
        """


class SmtpEmailSender(EmailSender):
    """
    SMTP email sender using smtplib.

    Example usage:
        sender = SmtpEmailSender(
            host="smtp.example.com",
            username="mailer",
            password=get_secret("SMTP_PASSWORD"),
            from_email='"Secure App" <no-reply@secureapp.com>',
        )
        sender.send(MailMessage(to="user@example.com", subject="Hi", text_body="Hello"))
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        from_email: str = '"Secure App" <no-reply@secureapp.com>',
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.from_email = from_email

    def build_message(self, message: MailMessage) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.set_content(message.text_body)
        if message.html_body:
            msg.add_alternative(message.html_body, subtype="html")
        return msg

    def send(self, message: MailMessage) -> None:
        try:
            # Header values with CR/LF raise ValueError here
            msg = self.build_message(message)
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            raise MailDeliveryError(
                f"SMTP delivery to {mask_email(message.to)} via {self.host}:{self.port} failed: {e!r}"
            ) from e

        logger.info(f"Email sent to {mask_email(message.to)} via {self.host}:{self.port}")


class ConsoleEmailSender(EmailSender):
    """
    Development adapter that writes messages to the log instead of sending them.
    """

    def send(self, message: MailMessage) -> None:
        output = [
            "=" * 50,
            "EMAIL (console delivery)",
            f"To:      {message.to}",
            f"Subject: {message.subject}",
            f"Body:    {message.text_body}",
        ]
        if message.html_body:
            output.append(f"HTML:    [Available: {len(message.html_body)} bytes]")
        output.append("=" * 50)
        logger.info("\n".join(output))


class InMemoryEmailSender(EmailSender):
    """
    Test double that stores messages in a list for assertions.

    `fail_next(n)` makes the next n sends raise MailDeliveryError.
    """

    def __init__(self):
        self.sent_messages: List[MailMessage] = []
        self.attempts = 0
        self._failures_left = 0
        self._lock = threading.Lock()

    def fail_next(self, count: int = 1) -> None:
        with self._lock:
            self._failures_left = count

    def send(self, message: MailMessage) -> None:
        with self._lock:
            self.attempts += 1
            if self._failures_left > 0:
                self._failures_left -= 1
                raise MailDeliveryError(f"Simulated failure sending to {message.to}")
            self.sent_messages.append(message)

    def messages_to(self, recipient: str) -> List[MailMessage]:
        return [m for m in self.sent_messages if m.to == recipient]

    def assert_sent(self, recipient: str, count: int = 1) -> None:
        """Helper for test assertions."""
        matches = self.messages_to(recipient)
        if len(matches) != count:
            raise AssertionError(
                f"Expected {count} messages to {recipient}, but found {len(matches)}."
            )

    def clear(self) -> None:
        self.sent_messages.clear()
