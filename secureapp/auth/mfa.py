"""
Multi-Factor Authentication (MFA) utilities for SecureApp.

Implements TOTP (Time-based One-Time Password) using RFC 6238.
Compatible with Google Authenticator, Authy, and other TOTP apps.
"""
import base64
import io
from dataclasses import dataclass
from typing import Optional

import pyotp
import qrcode


def generate_totp_secret() -> str:
    """
    Generate a new TOTP secret for MFA enrollment.

    Returns:
        Base32-encoded secret (32 characters).
    """
    return pyotp.random_base32()


def get_totp_provisioning_uri(
    secret: str,
    email: str,
    issuer: str = "SecureApp Inc"
) -> str:
    """
    Generate a provisioning URI for TOTP apps.

    This URI can be encoded as a QR code for easy scanning.

    Args:
        secret: Base32-encoded TOTP secret.
        email: User's email address (displayed in authenticator app).
        issuer: Application name (displayed in authenticator app).

    Returns:
        otpauth:// URI string.
    """
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=email, issuer_name=issuer)


def generate_qr_code(uri: str) -> bytes:
    """
    Generate a QR code image for the provisioning URI.

    Args:
        uri: otpauth:// provisioning URI.

    Returns:
        PNG image bytes.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    buffer.seek(0)
    return buffer.read()


def generate_qr_code_base64(uri: str) -> str:
    """
    Generate a base64-encoded QR code for embedding in HTML.

    Returns:
        Base64-encoded PNG image string (data URI ready).
    """
    png_bytes = generate_qr_code(uri)
    b64 = base64.b64encode(png_bytes).decode('utf-8')
    return f"data:image/png;base64,{b64}"


def verify_totp(
    secret: str,
    code: Optional[str],
    window: int = 1,
    for_time: Optional[float] = None,
) -> bool:
    """
    Verify a TOTP code against the secret.

    Args:
        secret: Base32-encoded TOTP secret.
        code: 6-digit code entered by user.
        window: Number of 30-second steps to accept on either side (default 1 = +-30s).
        for_time: Unix timestamp to verify at (defaults to now).

    Returns:
        True if code is valid, False otherwise.
    """
    if not secret or not code:
        return False

    # Clean the code (remove spaces, only digits)
    code = ''.join(filter(str.isdigit, code))

    if len(code) != 6:
        return False

    totp = pyotp.TOTP(secret)
    return totp.verify(code, for_time=for_time, valid_window=window)


def get_current_totp(secret: str, for_time: Optional[float] = None) -> str:
    """
    Get the TOTP code for a point in time (for testing/debugging).

    Args:
        secret: Base32-encoded TOTP secret.
        for_time: Unix timestamp (defaults to now).

    Returns:
        6-digit TOTP code.
    """
    totp = pyotp.TOTP(secret)
    if for_time is None:
        return totp.now()
    return totp.at(for_time)


@dataclass(frozen=True)
class TotpSecret:
    """A freshly generated secret and its provisioning URI."""
    secret_value: str
    provisioning_uri: str


class PyotpTotpProvider:
    """
    TOTP capabilities used by the enrollment manager.

    Bundles secret generation, QR rendering and verification so the
    managers receive them as one injected collaborator.
    """

    def __init__(self, window: int = 1):
        self.window = window

    def generate_secret(self, account_label: str, issuer_label: str) -> TotpSecret:
        secret = generate_totp_secret()
        uri = get_totp_provisioning_uri(secret, account_label, issuer_label)
        return TotpSecret(secret_value=secret, provisioning_uri=uri)

    def render_provisioning_image(self, provisioning_uri: str) -> str:
        return generate_qr_code_base64(provisioning_uri)

    def verify(self, secret: str, code: Optional[str], for_time: Optional[float] = None) -> bool:
        return verify_totp(secret, code, window=self.window, for_time=for_time)

