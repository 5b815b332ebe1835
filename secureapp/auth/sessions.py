"""
Session issuance.

A successful login yields a SessionIdentity; the issuer turns it into an
opaque bearer token stored alongside the credential records.
"""
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..database.records import SessionRecord
from ..database.store import CredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionIdentity:
    """Who a session belongs to."""
    email: str


@dataclass(frozen=True)
class IssuedSession:
    token: str
    email: str
    expires_at: float
    expires_in: int


class SessionIssuer:
    """
    Issues, resolves and revokes session tokens.
    """

    def __init__(
        self,
        store: CredentialStore,
        ttl_seconds: int = 24 * 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def issue(self, identity: SessionIdentity) -> IssuedSession:
        """
        Create a session for an authenticated identity.

        Returns:
            IssuedSession with a secure random 64-char hex token.
        """
        token = secrets.token_hex(32)
        expires_at = self.clock() + self.ttl_seconds
        self.store.put_session_record(
            SessionRecord(token=token, email=identity.email, expires_at=expires_at)
        )
        logger.debug(f"Created session, expires {expires_at:.0f}")
        return IssuedSession(
            token=token,
            email=identity.email,
            expires_at=expires_at,
            expires_in=self.ttl_seconds,
        )

    def resolve(self, token: str) -> Optional[SessionIdentity]:
        """
        Return the identity behind `token`, or None if unknown or expired.

        Expired sessions are removed on lookup.
        """
        if not token:
            return None
        record = self.store.get_session_record(token)
        if record is None:
            return None
        if record.is_expired(self.clock()):
            self.store.delete_session_record(token)
            return None
        return SessionIdentity(email=record.email)

    def revoke(self, token: str) -> None:
        self.store.delete_session_record(token)
