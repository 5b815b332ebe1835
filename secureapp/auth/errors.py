"""
Authentication error taxonomy.

All errors are local and user-facing. Each carries the HTTP status the
service layer answers with.
"""
from typing import Optional

from ..database.errors import ConflictError, UserNotFoundError


class AuthError(Exception):
    """Base class for authentication errors."""
    status_code = 400
    message = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


# Registration

class InvalidPasswordError(AuthError):
    message = "Password cannot be longer than 72 bytes"


# Enrollment

class NoPendingEnrollmentError(AuthError):
    message = "No MFA setup in progress"


class InvalidCodeError(AuthError):
    message = "Invalid MFA code"


# Email challenges

class EmailChallengeError(AuthError):
    message = "Invalid or expired code"


class NoActiveChallengeError(EmailChallengeError):
    message = "No active verification code"


class ChallengeExpiredError(EmailChallengeError):
    message = "Verification code expired"


class CodeMismatchError(EmailChallengeError):
    message = "Invalid code"


# Login

class LoginError(AuthError):
    status_code = 401


class InvalidCredentialsError(LoginError):
    # Same message for unknown user and wrong password
    message = "Invalid credentials"


class InvalidMfaCodeError(LoginError):
    message = "Invalid MFA code"


class InvalidEmailCodeError(LoginError):
    message = "Invalid email verification code"


__all__ = [
    "AuthError",
    "ConflictError",
    "UserNotFoundError",
    "InvalidPasswordError",
    "NoPendingEnrollmentError",
    "InvalidCodeError",
    "EmailChallengeError",
    "NoActiveChallengeError",
    "ChallengeExpiredError",
    "CodeMismatchError",
    "LoginError",
    "InvalidCredentialsError",
    "InvalidMfaCodeError",
    "InvalidEmailCodeError",
]
