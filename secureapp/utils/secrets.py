"""
Secrets management utilities for SecureApp.

Supports multiple secret sources:
1. Environment variables (development)
2. Docker secrets files (production)

Usage:
    from secureapp.utils.secrets import get_secret

    # Automatically checks SMTP_PASSWORD_FILE env var, then SMTP_PASSWORD env var
    smtp_password = get_secret("SMTP_PASSWORD")
"""
import os
import logging
from typing import Optional
from functools import lru_cache

logger = logging.getLogger(__name__)


@lru_cache(maxsize=32)
def get_secret(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Get a secret value from various sources.

    Priority:
    1. {NAME}_FILE environment variable (path to file containing secret)
    2. {NAME} environment variable (direct value)
    3. /run/secrets/{name.lower()} file (Docker secrets default path)
    4. Default value

    Args:
        name: Secret name (e.g., "SMTP_PASSWORD")
        default: Default value if secret not found

    Returns:
        Secret value or default
    """
    # 1. Check for _FILE variant (Docker secrets pattern)
    file_env = f"{name}_FILE"
    file_path = os.environ.get(file_env)

    if file_path and os.path.isfile(file_path):
        try:
            with open(file_path, 'r') as f:
                secret = f.read().strip()
                logger.debug(f"Loaded secret {name} from file")
                return secret
        except OSError as e:
            logger.warning(f"Failed to read secret file {file_path}: {e}")

    # 2. Check direct environment variable
    env_value = os.environ.get(name)
    if env_value:
        logger.debug(f"Loaded secret {name} from environment")
        return env_value

    # 3. Check Docker secrets default path
    docker_secret_path = f"/run/secrets/{name.lower()}"
    if os.path.isfile(docker_secret_path):
        try:
            with open(docker_secret_path, 'r') as f:
                secret = f.read().strip()
                logger.debug(f"Loaded secret {name} from Docker secrets")
                return secret
        except OSError as e:
            logger.warning(f"Failed to read Docker secret {docker_secret_path}: {e}")

    if default is None:
        logger.debug(f"Secret {name} not found, no default provided")
    return default


def mask_secret(secret: str, visible_chars: int = 4) -> str:
    """
    Mask a secret for safe logging.

    Args:
        secret: The secret to mask
        visible_chars: Number of characters to show at start and end

    Returns:
        Masked string like "abc...xyz"
    """
    if not secret or len(secret) <= visible_chars * 2:
        return "***"
    return f"{secret[:visible_chars]}...{secret[-visible_chars:]}"


def mask_email(email: Optional[str]) -> str:
    """
    Mask an email address for logs, e.g. "a***@x***".
    """
    if not email:
        return ""
    if "@" not in email:
        return mask_secret(email, visible_chars=1)
    user, domain = email.split("@", 1)
    return f"{user[:1]}***@{domain[:1]}***"
