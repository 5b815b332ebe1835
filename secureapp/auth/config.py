"""
Runtime settings for the authentication service.

Plain settings come from environment variables; credentials go through
`get_secret` so they can also be mounted as Docker secrets.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from ..utils.secrets import get_secret


def _to_bool(val: Optional[str], default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _to_float(val: Optional[str], default: float) -> float:
    try:
        return float(val) if val is not None else default
    except ValueError:
        return default


@dataclass
class AuthSettings:
    """
    Authentication service settings.

    By default email codes live 10 minutes and sessions 24 hours.
    """
    totp_issuer: str = "SecureApp Inc"
    email_code_ttl_seconds: int = 600
    session_ttl_hours: int = 24
    database_url: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_from: str = '"Secure App" <no-reply@secureapp.com>'
    mail_max_attempts: int = 3
    mail_retry_base_delay: float = 2.0
    cors_origins: List[str] = field(default_factory=lambda: ["http://127.0.0.1:5500"])

    @classmethod
    def from_env(cls) -> "AuthSettings":
        """Build settings from the process environment."""
        defaults = cls()
        cors = os.getenv("CORS_ORIGINS")
        return cls(
            totp_issuer=os.getenv("TOTP_ISSUER", defaults.totp_issuer),
            email_code_ttl_seconds=_to_int(
                os.getenv("EMAIL_CODE_TTL_SECONDS"), defaults.email_code_ttl_seconds
            ),
            session_ttl_hours=_to_int(os.getenv("SESSION_TTL_HOURS"), defaults.session_ttl_hours),
            database_url=get_secret("DATABASE_URL"),
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=_to_int(os.getenv("SMTP_PORT"), defaults.smtp_port),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=get_secret("SMTP_PASSWORD"),
            smtp_use_tls=_to_bool(os.getenv("SMTP_USE_TLS"), defaults.smtp_use_tls),
            mail_from=os.getenv("MAIL_FROM", defaults.mail_from),
            mail_max_attempts=_to_int(os.getenv("MAIL_MAX_ATTEMPTS"), defaults.mail_max_attempts),
            mail_retry_base_delay=_to_float(
                os.getenv("MAIL_RETRY_BASE_DELAY"), defaults.mail_retry_base_delay
            ),
            cors_origins=cors.split(",") if cors else defaults.cors_origins,
        )
