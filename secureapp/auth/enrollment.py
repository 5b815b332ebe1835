"""
TOTP enrollment.

Registration leaves a pending secret; the user proves they scanned it by
submitting a code, which promotes the secret onto their account.
"""
import logging
import time
from typing import Callable, Optional, Tuple

from .email_challenge import EmailChallengeManager
from .errors import NoPendingEnrollmentError, InvalidCodeError
from .mfa import PyotpTotpProvider
from ..database.records import PendingSecret
from ..database.store import CredentialStore
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)


class TotpEnrollmentManager:
    """
    Provisions, confirms and checks TOTP secrets.

    Example usage:
        enrollment = TotpEnrollmentManager(store, PyotpTotpProvider(), challenges)
        secret, uri = enrollment.begin_enrollment("user@example.com")
        enrollment.confirm_enrollment("user@example.com", "123456")
    """

    def __init__(
        self,
        store: CredentialStore,
        totp: PyotpTotpProvider,
        challenges: EmailChallengeManager,
        issuer: str = "SecureApp Inc",
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.totp = totp
        self.challenges = challenges
        self.issuer = issuer
        self.clock = clock

    def begin_enrollment(self, email: str) -> Tuple[str, str]:
        """
        Generate a pending secret for `email`.

        Any earlier pending secret for the same email is replaced. The user
        record is not touched.

        Returns:
            Tuple of (secret, provisioning_uri).
        """
        generated = self.totp.generate_secret(email, self.issuer)
        with self.store.locked():
            self.store.put_pending_secret(
                PendingSecret(email=email, secret_value=generated.secret_value)
            )

        logger.info(f"MFA setup initiated for {mask_email(email)}")
        return generated.secret_value, generated.provisioning_uri

    def confirm_enrollment(self, email: str, code: Optional[str]) -> None:
        """
        Promote the pending secret if `code` is valid for it.

        On success MFA is enabled, the pending secret is removed and a new
        email challenge is issued.

        Raises:
            NoPendingEnrollmentError: No pending secret exists for `email`.
            InvalidCodeError: The code does not match; the pending secret is kept.
        """
        with self.store.locked():
            pending = self.store.get_pending_secret(email)
            if pending is None:
                raise NoPendingEnrollmentError()

            if not self.totp.verify(pending.secret_value, code, for_time=self.clock()):
                logger.warning(f"Invalid enrollment code for {mask_email(email)}")
                raise InvalidCodeError()

            self.store.update_mfa(email, pending.secret_value)
            self.store.delete_pending_secret(email)

        logger.info(f"MFA enabled for {mask_email(email)}")

        # Mail goes out after the lock is released
        self.challenges.issue_challenge(email)

    def verify_login(self, email: str, code: Optional[str]) -> bool:
        """
        Check a login TOTP code against the user's confirmed secret.

        Returns False when the user is unknown or has no confirmed secret.
        """
        user = self.store.find_user(email)
        if user is None or not user.mfa_enabled or not user.mfa_secret:
            return False
        return self.totp.verify(user.mfa_secret, code, for_time=self.clock())
