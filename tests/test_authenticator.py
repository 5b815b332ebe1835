"""
Tests for the login sequence.

Covers:
- Check ordering (password, then MFA, then email code)
- Error taxonomy for each failing step
- Email verification at login
"""
from unittest.mock import MagicMock

import pytest

from secureapp.auth.authenticator import LoginAuthenticator
from secureapp.auth.errors import (
    InvalidCredentialsError,
    InvalidEmailCodeError,
    InvalidMfaCodeError,
    LoginError,
)
from secureapp.auth.mfa import get_current_totp
from secureapp.auth.sessions import SessionIdentity

from conftest import TEST_EMAIL, TEST_PASSWORD, fast_hash_password


@pytest.fixture
def spied(service):
    """The service's authenticator with verify_login and the email check spied on."""
    enrollment = service.enrollment
    enrollment.verify_login = MagicMock(wraps=enrollment.verify_login)
    challenges = service.challenges
    challenges.matches_active_challenge = MagicMock(wraps=challenges.matches_active_challenge)
    return service.authenticator


class TestOrdering:

    def test_wrong_password_never_checks_mfa(self, spied, enrolled_user, clock):
        code = get_current_totp(enrolled_user["secret"], clock())

        with pytest.raises(InvalidCredentialsError):
            spied.authenticate(TEST_EMAIL, "wrong-password", code, enrolled_user["email_code"])

        spied.enrollment.verify_login.assert_not_called()
        spied.challenges.matches_active_challenge.assert_not_called()

    def test_unknown_user_never_checks_mfa(self, spied):
        with pytest.raises(InvalidCredentialsError):
            spied.authenticate("nobody@example.com", TEST_PASSWORD, "123456")
        spied.enrollment.verify_login.assert_not_called()

    def test_wrong_mfa_never_checks_email(self, spied, enrolled_user, clock):
        wrong = get_current_totp(enrolled_user["secret"], clock() + 300)

        with pytest.raises(InvalidMfaCodeError):
            spied.authenticate(TEST_EMAIL, TEST_PASSWORD, wrong, enrolled_user["email_code"])

        spied.challenges.matches_active_challenge.assert_not_called()

    def test_unknown_and_wrong_password_look_alike(self, spied, enrolled_user):
        with pytest.raises(InvalidCredentialsError) as unknown:
            spied.authenticate("nobody@example.com", TEST_PASSWORD)
        with pytest.raises(InvalidCredentialsError) as wrong:
            spied.authenticate(TEST_EMAIL, "wrong-password")
        assert str(unknown.value) == str(wrong.value)


class TestMfaDisabled:
    """Accounts without MFA never fail on the MFA step."""

    @pytest.fixture
    def plain_user(self, store):
        store.create_user(TEST_EMAIL, fast_hash_password(TEST_PASSWORD))
        store.set_email_verified(TEST_EMAIL)

    @pytest.mark.parametrize("mfa_code", [None, "", "000000", "garbage"])
    def test_any_mfa_input_accepted(self, spied, plain_user, mfa_code):
        identity = spied.authenticate(TEST_EMAIL, TEST_PASSWORD, mfa_code)
        assert identity == SessionIdentity(email=TEST_EMAIL)
        spied.enrollment.verify_login.assert_not_called()

    def test_unverified_still_needs_email_code(self, store, spied):
        store.create_user(TEST_EMAIL, fast_hash_password(TEST_PASSWORD))
        with pytest.raises(InvalidEmailCodeError):
            spied.authenticate(TEST_EMAIL, TEST_PASSWORD)


class TestEmailStep:

    def test_first_login_verifies_email(self, spied, store, enrolled_user, clock):
        code = get_current_totp(enrolled_user["secret"], clock())

        spied.authenticate(TEST_EMAIL, TEST_PASSWORD, code, enrolled_user["email_code"])

        assert store.get_user(TEST_EMAIL).email_verified is True

    def test_email_code_not_consumed_at_login(self, spied, store, enrolled_user, clock):
        code = get_current_totp(enrolled_user["secret"], clock())
        spied.authenticate(TEST_EMAIL, TEST_PASSWORD, code, enrolled_user["email_code"])
        assert store.get_email_challenge(TEST_EMAIL) is not None

    def test_verified_account_skips_email_code(self, spied, store, enrolled_user, clock):
        store.set_email_verified(TEST_EMAIL)
        code = get_current_totp(enrolled_user["secret"], clock())

        identity = spied.authenticate(TEST_EMAIL, TEST_PASSWORD, code)

        assert identity.email == TEST_EMAIL
        spied.challenges.matches_active_challenge.assert_not_called()

    def test_missing_email_code(self, spied, enrolled_user, clock):
        code = get_current_totp(enrolled_user["secret"], clock())
        with pytest.raises(InvalidEmailCodeError):
            spied.authenticate(TEST_EMAIL, TEST_PASSWORD, code)

    def test_expired_email_code(self, spied, enrolled_user, clock):
        clock.advance(600)
        code = get_current_totp(enrolled_user["secret"], clock())
        with pytest.raises(InvalidEmailCodeError):
            spied.authenticate(TEST_EMAIL, TEST_PASSWORD, code, enrolled_user["email_code"])


class TestInjectedVerifier:

    def test_custom_password_verifier(self, store, service):
        store.create_user(TEST_EMAIL, "plain")
        store.set_email_verified(TEST_EMAIL)
        verifier = MagicMock(return_value=True)
        authenticator = LoginAuthenticator(
            store, service.enrollment, service.challenges, password_verifier=verifier
        )

        authenticator.authenticate(TEST_EMAIL, "anything")

        verifier.assert_called_once_with("plain", "anything")

    def test_login_errors_are_401(self):
        for cls in (InvalidCredentialsError, InvalidMfaCodeError, InvalidEmailCodeError):
            assert issubclass(cls, LoginError)
            assert cls.status_code == 401
