"""
Email verification challenges.

A challenge is a 6-digit code mailed to the account address. At most one
challenge is live per email; issuing a new one replaces the old. Expired
challenges are not swept, they simply stop verifying.
"""
import logging
import secrets
import time
from typing import Callable, Optional

from .errors import NoActiveChallengeError, ChallengeExpiredError, CodeMismatchError
from ..database.records import EmailChallenge
from ..database.store import CredentialStore
from ..notifications.mailer import MailMessage
from ..notifications.outbox import MailOutbox
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)

CODE_TTL_SECONDS = 600

VERIFICATION_SUBJECT = "Your Verification Code"


def generate_code() -> str:
    """Return a uniformly random code in [100000, 999999]."""
    return str(secrets.randbelow(900000) + 100000)


def build_verification_message(email: str, code: str) -> MailMessage:
    return MailMessage(
        to=email,
        subject=VERIFICATION_SUBJECT,
        text_body=f"Your verification code is: {code}",
        html_body=f"<p>Your verification code is: <strong>{code}</strong></p>",
    )


class EmailChallengeManager:
    """
    Issues, checks and consumes email verification codes.

    Example usage:
        challenges = EmailChallengeManager(store, outbox)
        challenges.issue_challenge("user@example.com")
        challenges.verify_challenge("user@example.com", "123456")
    """

    def __init__(
        self,
        store: CredentialStore,
        outbox: MailOutbox,
        ttl_seconds: int = CODE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        code_factory: Callable[[], str] = generate_code,
    ):
        self.store = store
        self.outbox = outbox
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.code_factory = code_factory

    def issue_challenge(self, email: str) -> None:
        """
        Replace any challenge for `email` with a fresh code and mail it.

        The mail is queued on the outbox; delivery failures surface in the
        outbox dead letters, never here. No user lookup is made, so the
        call behaves the same for unknown addresses.
        """
        challenge = EmailChallenge(
            email=email,
            code=self.code_factory(),
            expires_at=self.clock() + self.ttl_seconds,
        )
        with self.store.locked():
            self.store.put_email_challenge(challenge)

        self.outbox.enqueue(build_verification_message(email, challenge.code))
        logger.info(f"Issued email challenge for {mask_email(email)}")

    def verify_challenge(self, email: str, code: Optional[str]) -> None:
        """
        Check `code` against the live challenge and consume it on success.

        Raises:
            NoActiveChallengeError: No challenge exists for `email`.
            ChallengeExpiredError: The challenge is past its expiry (it is kept).
            CodeMismatchError: The code differs.
        """
        with self.store.locked():
            challenge = self.store.get_email_challenge(email)
            if challenge is None:
                raise NoActiveChallengeError()
            if challenge.is_expired(self.clock()):
                raise ChallengeExpiredError()
            if challenge.code != code:
                raise CodeMismatchError()
            self.store.delete_email_challenge(email)

        logger.info(f"Email challenge consumed for {mask_email(email)}")

    def matches_active_challenge(self, email: str, code: Optional[str]) -> bool:
        """
        True if `code` equals an unexpired challenge for `email`.

        Does not consume the challenge.
        """
        if not code:
            return False
        challenge = self.store.get_email_challenge(email)
        if challenge is None or challenge.is_expired(self.clock()):
            return False
        return challenge.code == code
