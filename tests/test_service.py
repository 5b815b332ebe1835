"""
End-to-end tests for AuthService.

Covers:
- Register -> confirm MFA -> login
- Duplicate registration
- Email verification endpoint flow
- Mail failures during confirmation
- Sessions (issue, resolve, expiry, logout)
- Concurrent confirmation
"""
import threading

import pytest

from secureapp.auth.config import AuthSettings
from secureapp.auth.errors import (
    ChallengeExpiredError,
    ConflictError,
    InvalidCredentialsError,
    InvalidPasswordError,
    NoActiveChallengeError,
    NoPendingEnrollmentError,
)
from secureapp.auth.mfa import get_current_totp
from secureapp.auth.service import AuthService, build_auth_service, build_store
from secureapp.database.auth_db import AuthDB
from secureapp.database.store import InMemoryCredentialStore
from secureapp.notifications.mailer import ConsoleEmailSender, SmtpEmailSender

from conftest import TEST_EMAIL, TEST_PASSWORD, fast_hash_password, latest_code


class TestRegistration:

    def test_register_returns_qr_and_secret(self, service, store):
        result = service.register(TEST_EMAIL, TEST_PASSWORD)

        assert result.qr_code_image.startswith("data:image/png;base64,")
        assert result.manual_secret in result.provisioning_uri
        assert store.get_pending_secret(TEST_EMAIL).secret_value == result.manual_secret

    def test_password_is_hashed(self, service, store):
        service.register(TEST_EMAIL, TEST_PASSWORD)
        assert store.get_user(TEST_EMAIL).password_ref != TEST_PASSWORD

    def test_duplicate_registration(self, service, store):
        first = service.register(TEST_EMAIL, TEST_PASSWORD)
        original = store.get_user(TEST_EMAIL)

        with pytest.raises(ConflictError):
            service.register(TEST_EMAIL, "another-password")

        assert store.get_user(TEST_EMAIL) == original
        assert store.get_pending_secret(TEST_EMAIL).secret_value == first.manual_secret

    @pytest.mark.parametrize("password", ["x" * 80, "é" * 37])
    def test_password_over_72_bytes(self, service, store, password):
        with pytest.raises(InvalidPasswordError):
            service.register(TEST_EMAIL, password)
        assert store.find_user(TEST_EMAIL) is None
        assert store.get_pending_secret(TEST_EMAIL) is None

    def test_password_over_72_bytes_with_default_hasher(self, store, totp, outbox, clock):
        service = AuthService(store, totp, outbox, clock=clock)
        with pytest.raises(InvalidPasswordError) as exc_info:
            service.register(TEST_EMAIL, "x" * 80)
        assert exc_info.value.status_code == 400


class TestEndToEnd:

    def test_register_confirm_login(self, service, sender, clock):
        result = service.register(TEST_EMAIL, TEST_PASSWORD)
        service.confirm_enrollment(TEST_EMAIL, get_current_totp(result.manual_secret, clock()))
        service.outbox.flush()
        email_code = latest_code(sender, TEST_EMAIL)

        clock.advance(60)
        session = service.login(
            TEST_EMAIL,
            TEST_PASSWORD,
            mfa_code=get_current_totp(result.manual_secret, clock()),
            email_code=email_code,
        )

        assert session.email == TEST_EMAIL
        assert len(session.token) == 64
        assert service.whoami(session.token).email == TEST_EMAIL
        account = service.get_account(TEST_EMAIL)
        assert account.mfa_enabled and account.email_verified

    def test_second_login_needs_no_email_code(self, service, enrolled_user, clock):
        mfa = get_current_totp(enrolled_user["secret"], clock())
        service.login(TEST_EMAIL, TEST_PASSWORD, mfa, enrolled_user["email_code"])

        clock.advance(30)
        session = service.login(TEST_EMAIL, TEST_PASSWORD, get_current_totp(enrolled_user["secret"], clock()))
        assert session.email == TEST_EMAIL

    def test_login_before_confirmation_needs_email_code(self, service, sender):
        service.register(TEST_EMAIL, TEST_PASSWORD)
        service.request_email_challenge(TEST_EMAIL)
        service.outbox.flush()

        session = service.login(TEST_EMAIL, TEST_PASSWORD, email_code=latest_code(sender, TEST_EMAIL))
        assert session.email == TEST_EMAIL

    def test_wrong_password(self, service, enrolled_user):
        with pytest.raises(InvalidCredentialsError):
            service.login(TEST_EMAIL, "wrong-password")


class TestEmailVerification:

    def test_verify_marks_account(self, service, store, enrolled_user):
        service.verify_email_challenge(TEST_EMAIL, enrolled_user["email_code"])

        assert store.get_user(TEST_EMAIL).email_verified is True
        with pytest.raises(NoActiveChallengeError):
            service.verify_email_challenge(TEST_EMAIL, enrolled_user["email_code"])

    def test_expired(self, service, enrolled_user, clock):
        clock.advance(600)
        with pytest.raises(ChallengeExpiredError):
            service.verify_email_challenge(TEST_EMAIL, enrolled_user["email_code"])

    def test_unknown_email_challenge_is_silent(self, service, sender, store):
        service.request_email_challenge("nobody@example.com")
        service.outbox.flush()

        code = latest_code(sender, "nobody@example.com")
        service.verify_email_challenge("nobody@example.com", code)
        assert store.find_user("nobody@example.com") is None


class TestMailFailures:

    def test_confirmation_survives_mail_failure(self, service, sender, store, clock):
        result = service.register(TEST_EMAIL, TEST_PASSWORD)
        sender.fail_next(3)

        service.confirm_enrollment(TEST_EMAIL, get_current_totp(result.manual_secret, clock()))
        service.outbox.flush()

        assert store.get_user(TEST_EMAIL).mfa_enabled is True
        assert sender.sent_messages == []
        assert sender.attempts == 3
        failures = service.outbox.failures_for(TEST_EMAIL)
        assert len(failures) == 1
        assert failures[0].status == "dead"
        assert service.outbox.stats()["dead_letters"] == 1

    def test_transient_failure_retried(self, service, sender, clock):
        result = service.register(TEST_EMAIL, TEST_PASSWORD)
        sender.fail_next(2)

        service.confirm_enrollment(TEST_EMAIL, get_current_totp(result.manual_secret, clock()))
        service.outbox.flush()

        sender.assert_sent(TEST_EMAIL, count=1)
        assert service.outbox.failures_for(TEST_EMAIL) == []


class TestSessions:

    def test_logout(self, service, enrolled_user, clock):
        session = service.login(
            TEST_EMAIL, TEST_PASSWORD,
            get_current_totp(enrolled_user["secret"], clock()),
            enrolled_user["email_code"],
        )
        service.logout(session.token)
        assert service.whoami(session.token) is None

    def test_session_expires(self, service, store, enrolled_user, clock):
        session = service.login(
            TEST_EMAIL, TEST_PASSWORD,
            get_current_totp(enrolled_user["secret"], clock()),
            enrolled_user["email_code"],
        )
        assert session.expires_in == 24 * 3600

        clock.advance(24 * 3600)
        assert service.whoami(session.token) is None
        assert store.get_session_record(session.token) is None

    @pytest.mark.parametrize("token", ["", "unknown-token"])
    def test_unknown_token(self, service, token):
        assert service.whoami(token) is None


class TestConcurrency:

    def test_concurrent_confirmations_single_success(self, service, sender, clock):
        result = service.register(TEST_EMAIL, TEST_PASSWORD)
        code = get_current_totp(result.manual_secret, clock())
        outcomes = []
        barrier = threading.Barrier(6)

        def confirm():
            barrier.wait()
            try:
                service.confirm_enrollment(TEST_EMAIL, code)
                outcomes.append("ok")
            except NoPendingEnrollmentError:
                outcomes.append("no_pending")

        threads = [threading.Thread(target=confirm) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("no_pending") == 5
        service.outbox.flush()
        sender.assert_sent(TEST_EMAIL, count=1)


class TestWiring:

    def test_settings_drive_ttls(self, store, totp, outbox, clock):
        settings = AuthSettings(email_code_ttl_seconds=60, session_ttl_hours=1)
        service = AuthService(store, totp, outbox, settings=settings, clock=clock,
                              password_hasher=fast_hash_password)
        assert service.challenges.ttl_seconds == 60
        assert service.sessions.ttl_seconds == 3600

    def test_build_store_defaults_to_memory(self):
        assert isinstance(build_store(AuthSettings()), InMemoryCredentialStore)

    def test_build_store_sql(self, tmp_path):
        store = build_store(AuthSettings(database_url=f"sqlite:///{tmp_path / 'auth.db'}"))
        assert isinstance(store, AuthDB)
        assert store.find_user(TEST_EMAIL) is None

    def test_build_auth_service_sender_choice(self):
        console = build_auth_service(AuthSettings())
        assert isinstance(console.outbox.sender, ConsoleEmailSender)

        smtp = build_auth_service(AuthSettings(smtp_host="smtp.example.com", mail_max_attempts=5))
        assert isinstance(smtp.outbox.sender, SmtpEmailSender)
        assert smtp.outbox.retry_policy.max_attempts == 5
