"""
Credential store interface and in-memory implementation.

A credential store holds three keyed maps plus sessions:
- user records (permanent)
- pending TOTP secrets (until enrollment is confirmed)
- email challenges (until consumed or overwritten)

Stores do no I/O beyond their own persistence. Callers that need a
multi-step read-modify-write hold `store.locked()` for its duration.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterator, Optional

from .errors import ConflictError, UserNotFoundError
from .records import UserRecord, PendingSecret, EmailChallenge, SessionRecord

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """
    Abstract base for credential stores.

    Implementations must be safe to call from several request threads;
    `locked()` provides the re-entrant critical section used around
    compound mutations such as enrollment promotion.
    """

    def __init__(self):
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator["CredentialStore"]:
        """
        Hold the store-wide mutation lock.

        Usage:
            with store.locked():
                pending = store.get_pending_secret(email)
                ...
        """
        with self._lock:
            yield self

    def get_user(self, email: str) -> UserRecord:
        """
        Get a user record.

        Raises:
            UserNotFoundError: If no user is registered under `email`.
        """
        user = self.find_user(email)
        if user is None:
            raise UserNotFoundError(email)
        return user

    # ==========================================
    # User Records
    # ==========================================

    @abstractmethod
    def create_user(self, email: str, password_ref: str) -> UserRecord:
        """
        Create a user with MFA disabled and email unverified.

        Raises:
            ConflictError: If the email is already registered.
        """

    @abstractmethod
    def find_user(self, email: str) -> Optional[UserRecord]:
        """Return the user record for `email`, or None."""

    @abstractmethod
    def update_mfa(self, email: str, secret: str) -> None:
        """
        Store a confirmed TOTP secret and enable MFA.

        Raises:
            UserNotFoundError: If the user does not exist.
        """

    @abstractmethod
    def set_email_verified(self, email: str) -> None:
        """
        Mark the user's email as verified.

        Raises:
            UserNotFoundError: If the user does not exist.
        """

    # ==========================================
    # Pending TOTP Secrets
    # ==========================================

    @abstractmethod
    def put_pending_secret(self, pending: PendingSecret) -> None:
        """Store a pending secret, replacing any previous one for the email."""

    @abstractmethod
    def get_pending_secret(self, email: str) -> Optional[PendingSecret]:
        ...

    @abstractmethod
    def delete_pending_secret(self, email: str) -> None:
        ...

    # ==========================================
    # Email Challenges
    # ==========================================

    @abstractmethod
    def put_email_challenge(self, challenge: EmailChallenge) -> None:
        """Store a challenge, replacing any previous one for the email."""

    @abstractmethod
    def get_email_challenge(self, email: str) -> Optional[EmailChallenge]:
        ...

    @abstractmethod
    def delete_email_challenge(self, email: str) -> None:
        ...

    # ==========================================
    # Sessions
    # ==========================================

    @abstractmethod
    def put_session_record(self, session: SessionRecord) -> None:
        ...

    @abstractmethod
    def get_session_record(self, token: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    def delete_session_record(self, token: str) -> None:
        ...

    def ping(self) -> bool:
        """Return True if the backing storage is reachable."""
        return True


class InMemoryCredentialStore(CredentialStore):
    """
    Dict-backed credential store.

    Records are copied on the way in and out so callers never hold a
    reference into the store's state.

    Example usage:
        store = InMemoryCredentialStore()
        store.create_user("user@example.com", password_hash)
        user = store.get_user("user@example.com")
    """

    def __init__(self):
        super().__init__()
        self._users: Dict[str, UserRecord] = {}
        self._pending: Dict[str, PendingSecret] = {}
        self._challenges: Dict[str, EmailChallenge] = {}
        self._sessions: Dict[str, SessionRecord] = {}

    def create_user(self, email: str, password_ref: str) -> UserRecord:
        with self._lock:
            if email in self._users:
                raise ConflictError(email)
            user = UserRecord(email=email, password_ref=password_ref)
            self._users[email] = user
        logger.debug("Stored user record")
        return replace(user)

    def find_user(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            user = self._users.get(email)
            return replace(user) if user is not None else None

    def update_mfa(self, email: str, secret: str) -> None:
        with self._lock:
            user = self._users.get(email)
            if user is None:
                raise UserNotFoundError(email)
            user.mfa_secret = secret
            user.mfa_enabled = True

    def set_email_verified(self, email: str) -> None:
        with self._lock:
            user = self._users.get(email)
            if user is None:
                raise UserNotFoundError(email)
            user.email_verified = True

    def put_pending_secret(self, pending: PendingSecret) -> None:
        with self._lock:
            self._pending[pending.email] = replace(pending)

    def get_pending_secret(self, email: str) -> Optional[PendingSecret]:
        with self._lock:
            pending = self._pending.get(email)
            return replace(pending) if pending is not None else None

    def delete_pending_secret(self, email: str) -> None:
        with self._lock:
            self._pending.pop(email, None)

    def put_email_challenge(self, challenge: EmailChallenge) -> None:
        with self._lock:
            self._challenges[challenge.email] = replace(challenge)

    def get_email_challenge(self, email: str) -> Optional[EmailChallenge]:
        with self._lock:
            challenge = self._challenges.get(email)
            return replace(challenge) if challenge is not None else None

    def delete_email_challenge(self, email: str) -> None:
        with self._lock:
            self._challenges.pop(email, None)

    def put_session_record(self, session: SessionRecord) -> None:
        with self._lock:
            self._sessions[session.token] = replace(session)

    def get_session_record(self, token: str) -> Optional[SessionRecord]:
        with self._lock:
            session = self._sessions.get(token)
            return replace(session) if session is not None else None

    def delete_session_record(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)
