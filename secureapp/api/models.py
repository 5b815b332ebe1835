"""
Pydantic Models for the SecureApp API.

Request and response models for all API endpoints. Request fields also
accept the camelCase names sent by the browser client
(mfaCode, emailCode).

Email fields use EmailStr, which lowercases the domain part. The local
part is kept as given, and that is what the store keys on.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator

from ..database.auth_db import MAX_PASSWORD_BYTES


# ============================================
# Registration & Enrollment
# ============================================

class UserRegister(BaseModel):
    """
    User registration request.

    Creates a new user account with email and password.
    Password must be 8 to 72 characters and at most 72 bytes in UTF-8.
    """
    email: EmailStr = Field(..., description="Valid email address")
    password: str = Field(
        ..., min_length=8, max_length=MAX_PASSWORD_BYTES,
        description="Password (8 to 72 characters, at most 72 bytes)",
    )

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "securepassword123"
            }
        }
    )


class RegisterResponse(BaseModel):
    """Registration response with the authenticator QR code."""
    success: bool = True
    qr_code_url: str = Field(..., description="PNG data URI of the provisioning QR code")
    manual_secret: str = Field(..., description="Base32 secret for manual entry")


class MFASetupVerifyRequest(BaseModel):
    """Enrollment confirmation with a code from the authenticator app."""
    email: EmailStr
    # Spaces and dashes are stripped when verifying, as at login
    mfa_code: str = Field(..., alias="mfaCode", min_length=1, max_length=16)

    model_config = ConfigDict(populate_by_name=True)


# ============================================
# Email Verification
# ============================================

class EmailChallengeRequest(BaseModel):
    """Request a new email verification code."""
    email: EmailStr


class EmailVerifyRequest(BaseModel):
    """Submit an email verification code."""
    email: EmailStr
    code: str = Field(..., description="6-digit code from the verification email")


# ============================================
# Login & Session
# ============================================

class UserLogin(BaseModel):
    """
    User login request.

    Provide mfa_code if MFA is enabled, and email_code if the email
    address has not been verified yet.
    """
    email: EmailStr = Field(..., description="Registered email address")
    password: str = Field(..., description="Account password")
    mfa_code: Optional[str] = Field(None, alias="mfaCode", description="6-digit TOTP code")
    email_code: Optional[str] = Field(None, alias="emailCode", description="6-digit email verification code")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "securepassword123",
                "mfa_code": "123456",
                "email_code": "654321"
            }
        }
    )


class TokenResponse(BaseModel):
    """Authentication token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration in seconds")
    email: str


class UserResponse(BaseModel):
    """Current account state."""
    email: str
    mfa_enabled: bool
    email_verified: bool


class SuccessResponse(BaseModel):
    success: bool = True


# ============================================
# Health & Errors
# ============================================

class HealthStatus(BaseModel):
    """Health check response."""
    status: str
    version: str
    services: Dict[str, str]
    mail_outbox: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
