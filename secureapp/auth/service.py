"""
Authentication service.

Transport-agnostic entry points used by the API layer:
register, confirm_enrollment, request_email_challenge,
verify_email_challenge, login, logout and whoami.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .authenticator import LoginAuthenticator
from .config import AuthSettings
from .email_challenge import EmailChallengeManager
from .enrollment import TotpEnrollmentManager
from .mfa import PyotpTotpProvider
from .sessions import SessionIssuer, SessionIdentity, IssuedSession
from .errors import InvalidPasswordError
from ..database.auth_db import AuthDB, MAX_PASSWORD_BYTES, hash_password, verify_password
from ..database.records import UserRecord
from ..database.store import CredentialStore, InMemoryCredentialStore
from ..notifications.mailer import EmailSender, SmtpEmailSender, ConsoleEmailSender
from ..notifications.outbox import MailOutbox, RetryPolicy
from ..utils.secrets import mask_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    qr_code_image: str
    manual_secret: str
    provisioning_uri: str


class AuthService:
    """
    Facade over the credential store and the enrollment, challenge and
    login managers. All collaborators are injected.

    Example usage:
        service = AuthService(InMemoryCredentialStore(), PyotpTotpProvider(), outbox)
        result = service.register("user@example.com", "password")
        service.confirm_enrollment("user@example.com", "123456")
        session = service.login("user@example.com", "password", "654321", "112233")
    """

    def __init__(
        self,
        store: CredentialStore,
        totp: PyotpTotpProvider,
        outbox: MailOutbox,
        settings: Optional[AuthSettings] = None,
        clock: Callable[[], float] = time.time,
        password_hasher: Callable[[str], str] = hash_password,
        password_verifier: Callable[[str, str], bool] = verify_password,
    ):
        self.settings = settings or AuthSettings()
        self.store = store
        self.totp = totp
        self.outbox = outbox
        self.password_hasher = password_hasher

        self.challenges = EmailChallengeManager(
            store,
            outbox,
            ttl_seconds=self.settings.email_code_ttl_seconds,
            clock=clock,
        )
        self.enrollment = TotpEnrollmentManager(
            store,
            totp,
            self.challenges,
            issuer=self.settings.totp_issuer,
            clock=clock,
        )
        self.authenticator = LoginAuthenticator(
            store,
            self.enrollment,
            self.challenges,
            password_verifier=password_verifier,
        )
        self.sessions = SessionIssuer(
            store,
            ttl_seconds=self.settings.session_ttl_hours * 3600,
            clock=clock,
        )

    def register(self, email: str, password: str) -> RegistrationResult:
        """
        Create an account and start TOTP enrollment.

        Raises:
            InvalidPasswordError: If the password is longer than bcrypt accepts.
            ConflictError: If the email is already registered.
        """
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise InvalidPasswordError()
        password_ref = self.password_hasher(password)
        self.store.create_user(email, password_ref)

        secret, uri = self.enrollment.begin_enrollment(email)
        qr_image = self.totp.render_provisioning_image(uri)

        logger.info(f"New user registered: {mask_email(email)}")
        return RegistrationResult(
            qr_code_image=qr_image,
            manual_secret=secret,
            provisioning_uri=uri,
        )

    def confirm_enrollment(self, email: str, mfa_code: Optional[str]) -> None:
        self.enrollment.confirm_enrollment(email, mfa_code)

    def request_email_challenge(self, email: str) -> None:
        """
        Mail a fresh verification code.

        Always succeeds, whether or not `email` belongs to an account.
        """
        self.challenges.issue_challenge(email)

    def verify_email_challenge(self, email: str, code: Optional[str]) -> None:
        """
        Consume the email challenge and mark the account verified.

        Raises:
            NoActiveChallengeError, ChallengeExpiredError, CodeMismatchError
        """
        with self.store.locked():
            self.challenges.verify_challenge(email, code)
            if self.store.find_user(email) is not None:
                self.store.set_email_verified(email)
        logger.info(f"Email verified for {mask_email(email)}")

    def login(
        self,
        email: str,
        password: str,
        mfa_code: Optional[str] = None,
        email_code: Optional[str] = None,
    ) -> IssuedSession:
        """
        Authenticate and open a session.

        Raises:
            InvalidCredentialsError, InvalidMfaCodeError, InvalidEmailCodeError
        """
        identity = self.authenticator.authenticate(email, password, mfa_code, email_code)
        return self.sessions.issue(identity)

    def logout(self, token: str) -> None:
        self.sessions.revoke(token)

    def whoami(self, token: str) -> Optional[SessionIdentity]:
        return self.sessions.resolve(token)

    def get_account(self, email: str) -> UserRecord:
        return self.store.get_user(email)


def build_email_sender(settings: AuthSettings) -> EmailSender:
    """SMTP when a host is configured, console logging otherwise."""
    if settings.smtp_host:
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_email=settings.mail_from,
        )
    logger.warning("SMTP_HOST not set; verification emails will only be logged")
    return ConsoleEmailSender()


def build_store(settings: AuthSettings) -> CredentialStore:
    """SQL store when DATABASE_URL is set, in-memory otherwise."""
    if settings.database_url:
        db = AuthDB(settings.database_url)
        db.init_schema()
        return db
    logger.warning("DATABASE_URL not set; using in-memory credential store")
    return InMemoryCredentialStore()


def build_auth_service(settings: Optional[AuthSettings] = None) -> AuthService:
    """
    Wire an AuthService from settings.
    """
    settings = settings or AuthSettings.from_env()
    outbox = MailOutbox(
        build_email_sender(settings),
        RetryPolicy(
            max_attempts=settings.mail_max_attempts,
            base_delay=settings.mail_retry_base_delay,
            max_delay=max(60.0, settings.mail_retry_base_delay),
        ),
    )
    return AuthService(
        store=build_store(settings),
        totp=PyotpTotpProvider(),
        outbox=outbox,
        settings=settings,
    )
