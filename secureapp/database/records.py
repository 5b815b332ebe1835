"""
Credential records held by the credential stores.

Timestamps are epoch seconds as returned by the injected clock.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass
class UserRecord:
    """
    A registered account.

    `mfa_secret` is only ever set together with `mfa_enabled`, by a
    successful enrollment confirmation.
    """
    email: str
    password_ref: str
    mfa_enabled: bool = False
    mfa_secret: Optional[str] = None
    email_verified: bool = False


@dataclass
class PendingSecret:
    """A TOTP secret issued at registration but not yet confirmed."""
    email: str
    secret_value: str


@dataclass
class EmailChallenge:
    """A single-use numeric email verification code."""
    email: str
    code: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class SessionRecord:
    """An issued session token and the identity it stands for."""
    token: str
    email: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
