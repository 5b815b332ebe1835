"""
Authentication for SecureApp.

This package provides:
- TOTP enrollment (pending secret, confirmation, login checks)
- Email verification challenges
- Login authentication (password + MFA + email code)
- Session issuance
"""
from .mfa import (
    generate_totp_secret,
    get_totp_provisioning_uri,
    verify_totp,
    generate_qr_code_base64,
    PyotpTotpProvider,
)
from .service import AuthService, RegistrationResult, build_auth_service
from .config import AuthSettings

__all__ = [
    "generate_totp_secret",
    "get_totp_provisioning_uri",
    "verify_totp",
    "generate_qr_code_base64",
    "PyotpTotpProvider",
    "AuthService",
    "RegistrationResult",
    "build_auth_service",
    "AuthSettings",
]
