"""
Pytest configuration and shared fixtures for SecureApp tests.

This module provides common test fixtures for:
- A controllable clock
- In-memory credential store and mail sender
- A fully wired AuthService
- Helpers for reading codes out of sent mail
"""
import bcrypt
import pytest

from secureapp.auth.mfa import PyotpTotpProvider, get_current_totp
from secureapp.auth.service import AuthService
from secureapp.database.store import InMemoryCredentialStore
from secureapp.notifications.mailer import InMemoryEmailSender
from secureapp.notifications.outbox import MailOutbox, RetryPolicy


# Aligned to a 30-second TOTP step boundary
START_TIME = 1_700_000_010.0

TEST_EMAIL = "user@example.com"
TEST_PASSWORD = "securepassword123"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fast_hash_password(password: str) -> str:
    """Low-cost bcrypt so service tests stay quick."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


def latest_code(sender: InMemoryEmailSender, email: str) -> str:
    """Extract the code from the most recent verification mail to `email`."""
    messages = sender.messages_to(email)
    assert messages, f"no mail sent to {email}"
    return messages[-1].text_body.rsplit(" ", 1)[-1]


# ============================================
# Core Fixtures
# ============================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def sender():
    return InMemoryEmailSender()


@pytest.fixture
def outbox(sender):
    """Outbox without backoff delays; tests deliver with flush()."""
    return MailOutbox(
        sender,
        RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False),
    )


@pytest.fixture
def totp():
    return PyotpTotpProvider()


@pytest.fixture
def service(store, totp, outbox, clock):
    """AuthService wired to in-memory collaborators."""
    return AuthService(
        store=store,
        totp=totp,
        outbox=outbox,
        clock=clock,
        password_hasher=fast_hash_password,
    )


@pytest.fixture
def enrolled_user(service, sender, clock):
    """
    Register and confirm MFA for TEST_EMAIL.

    Returns:
        Dict with the TOTP secret and the mailed email code.
    """
    result = service.register(TEST_EMAIL, TEST_PASSWORD)
    code = get_current_totp(result.manual_secret, clock())
    service.confirm_enrollment(TEST_EMAIL, code)
    service.outbox.flush()
    return {
        "email": TEST_EMAIL,
        "password": TEST_PASSWORD,
        "secret": result.manual_secret,
        "email_code": latest_code(sender, TEST_EMAIL),
    }
