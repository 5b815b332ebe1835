"""
Login authentication.

Login walks a fixed sequence of checks and stops at the first failure:

    START -> CREDENTIALS_CHECKED -> MFA_CHECKED -> EMAIL_CHECKED -> AUTHENTICATED

Any failure ends in REJECTED. The MFA code is only evaluated once the
password is known to be correct, and the email code only once MFA has
passed.
"""
import enum
import logging
from typing import Callable, Optional

from .email_challenge import EmailChallengeManager
from .enrollment import TotpEnrollmentManager
from .errors import (
    AuthError,
    InvalidCredentialsError,
    InvalidMfaCodeError,
    InvalidEmailCodeError,
)
from .sessions import SessionIdentity
from ..database.auth_db import verify_password
from ..database.store import CredentialStore
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)


class LoginState(enum.Enum):
    START = "start"
    CREDENTIALS_CHECKED = "credentials_checked"
    MFA_CHECKED = "mfa_checked"
    EMAIL_CHECKED = "email_checked"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


class LoginAuthenticator:
    """
    Composes the password, MFA and email-verification checks.

    Args:
        store: Credential store holding user records.
        enrollment: Used for TOTP checks on MFA-enabled accounts.
        challenges: Used for the email code on unverified accounts.
        password_verifier: Callable (stored_ref, supplied) -> bool.
    """

    def __init__(
        self,
        store: CredentialStore,
        enrollment: TotpEnrollmentManager,
        challenges: EmailChallengeManager,
        password_verifier: Callable[[str, str], bool] = verify_password,
    ):
        self.store = store
        self.enrollment = enrollment
        self.challenges = challenges
        self.password_verifier = password_verifier

    def authenticate(
        self,
        email: str,
        password: str,
        mfa_code: Optional[str] = None,
        email_code: Optional[str] = None,
    ) -> SessionIdentity:
        """
        Run the login sequence.

        Returns:
            SessionIdentity for the authenticated account.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            InvalidMfaCodeError: MFA is enabled and the TOTP code is wrong.
            InvalidEmailCodeError: Email is unverified and the code is missing,
                wrong or expired.
        """
        state = LoginState.START
        try:
            user = self.store.find_user(email)
            if user is None or not self.password_verifier(user.password_ref, password):
                raise InvalidCredentialsError()
            state = LoginState.CREDENTIALS_CHECKED

            if user.mfa_enabled:
                if not self.enrollment.verify_login(email, mfa_code):
                    raise InvalidMfaCodeError()
            state = LoginState.MFA_CHECKED

            if not user.email_verified:
                with self.store.locked():
                    if not self.challenges.matches_active_challenge(email, email_code):
                        raise InvalidEmailCodeError()
                    # Once verified, never asked again
                    self.store.set_email_verified(email)
                logger.info(f"Email verified at login for {mask_email(email)}")
            state = LoginState.EMAIL_CHECKED

        except AuthError as e:
            logger.warning(
                f"Login {LoginState.REJECTED.value} for {mask_email(email)} "
                f"after {state.value}: {e}"
            )
            raise

        state = LoginState.AUTHENTICATED
        logger.info(f"User logged in: {mask_email(email)} ({state.value})")
        return SessionIdentity(email=email)
