"""
Authentication Endpoints.

Provides registration with TOTP enrollment, email verification, login,
logout and the current-account lookup.
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..models import (
    UserRegister,
    RegisterResponse,
    MFASetupVerifyRequest,
    EmailChallengeRequest,
    EmailVerifyRequest,
    UserLogin,
    TokenResponse,
    UserResponse,
    SuccessResponse,
    ErrorResponse,
)
from ..deps import (
    get_auth_service,
    get_current_identity,
    check_register_rate_limit,
    check_login_rate_limit,
    check_email_rate_limit,
)
from ...auth.errors import (
    AuthError,
    ConflictError,
    UserNotFoundError,
    LoginError,
)
from ...auth.service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Password too long"},
        409: {"model": ErrorResponse, "description": "Email already exists"},
        429: {"model": ErrorResponse, "description": "Too many registration attempts"},
    },
    dependencies=[Depends(check_register_rate_limit)],
)
async def register(
    user_data: UserRegister,
    service: AuthService = Depends(get_auth_service),
):
    """
    Register a new user account.

    Returns the authenticator QR code and the secret for manual entry.
    MFA is not active until the setup is confirmed with
    `/auth/verify-mfa-setup`.

    The email is keyed as validated: the domain is lowercased, the local
    part keeps its case.
    """
    try:
        result = service.register(user_data.email, user_data.password)
    except ConflictError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail="User already exists",
        )
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return RegisterResponse(
        success=True,
        qr_code_url=result.qr_code_image,
        manual_secret=result.manual_secret,
    )


@router.post(
    "/verify-mfa-setup",
    response_model=SuccessResponse,
    responses={
        400: {"model": ErrorResponse, "description": "No setup in progress or invalid code"},
    },
)
async def verify_mfa_setup(
    request: MFASetupVerifyRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Confirm TOTP enrollment with a code from the authenticator app.

    On success MFA is enabled and a verification code is mailed.
    """
    try:
        service.confirm_enrollment(request.email, request.mfa_code)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return SuccessResponse(success=True)


@router.post(
    "/send-verification-email",
    response_model=SuccessResponse,
    responses={
        429: {"model": ErrorResponse, "description": "Too many verification emails"},
    },
    dependencies=[Depends(check_email_rate_limit)],
)
async def send_verification_email(
    request: EmailChallengeRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Mail a fresh verification code.

    Always reports success so the endpoint does not reveal which
    addresses have accounts.
    """
    service.request_email_challenge(request.email)
    return SuccessResponse(success=True)


@router.post(
    "/verify-email",
    response_model=SuccessResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing, expired or wrong code"},
    },
)
async def verify_email(
    request: EmailVerifyRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Consume a verification code and mark the email verified."""
    try:
        service.verify_email_challenge(request.email, request.code)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return SuccessResponse(success=True)


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials or codes"},
        429: {"model": ErrorResponse, "description": "Too many attempts from this IP"},
    },
    dependencies=[Depends(check_login_rate_limit)],
)
async def login(
    credentials: UserLogin,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate user and return access token.

    Provide:
    - mfa_code: 6-digit code from the authenticator app, if MFA is enabled
    - email_code: code from the verification email, if the email is
      not verified yet
    """
    try:
        session = service.login(
            credentials.email,
            credentials.password,
            mfa_code=credentials.mfa_code,
            email_code=credentials.email_code,
        )
    except LoginError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenResponse(
        access_token=session.token,
        token_type="bearer",
        expires_in=session.expires_in,
        email=session.email,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    current_user: Dict = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """
    Logout and invalidate the current session.
    """
    service.logout(current_user["_session_token"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: Dict = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """
    Get current user information.
    """
    try:
        user = service.get_account(current_user["email"])
    except UserNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    return UserResponse(
        email=user.email,
        mfa_enabled=user.mfa_enabled,
        email_verified=user.email_verified,
    )
