"""
FastAPI Dependencies for the SecureApp API.

Provides:
- The authentication service
- Bearer-token session dependencies
- Rate limiting (Redis-backed with in-memory fallback)
"""
import os
import time
import logging
from typing import Optional, Dict

import redis
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..auth.service import AuthService, build_auth_service
from ..auth.sessions import SessionIdentity

logger = logging.getLogger(__name__)


# ============================================
# Redis Client
# ============================================

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get Redis client singleton.

    Returns None if Redis is not configured or unavailable.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    host = os.getenv("REDIS_HOST")
    if not host:
        return None
    port = int(os.getenv("REDIS_PORT", "6379"))
    password = os.getenv("REDIS_PASSWORD", "") or None
    db = int(os.getenv("REDIS_DB", "0"))

    try:
        client = redis.Redis(
            host=host,
            port=port,
            password=password,
            db=db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        # Test connection
        client.ping()
        logger.info(f"Redis connected: {host}:{port}")
        _redis_client = client
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will use in-memory fallback.")
        return None


# Security scheme
security = HTTPBearer(auto_error=False)


# ============================================
# Service Dependencies
# ============================================

_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get singleton authentication service."""
    global _auth_service
    if _auth_service is None:
        _auth_service = build_auth_service()
    return _auth_service


# ============================================
# Authentication Dependencies
# ============================================

async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: AuthService = Depends(get_auth_service),
) -> Dict:
    """
    Validate bearer token and return the session identity.

    Raises:
        HTTPException: If token is missing, invalid, or expired.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    identity: Optional[SessionIdentity] = service.whoami(token)

    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Keep the token for logout
    return {"email": identity.email, "_session_token": token}


# ============================================
# Auth Rate Limiting (IP-based for unauthenticated endpoints)
# ============================================

class AuthRateLimiter:
    """
    Rate limiter for authentication endpoints (IP-based).

    Provides separate limits for register, login and verification-email
    endpoints. Uses Redis with in-memory fallback.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis = redis_client
        self.register_limit = 5   # per hour
        self.login_limit = 10     # per 15 minutes
        self.email_limit = 5      # per hour
        # In-memory fallback storage
        self._memory_store: Dict[str, list] = {}

    def _get_count(self, key: str, window_seconds: int) -> int:
        """Get current count for a key."""
        if self.redis is not None:
            try:
                full_key = f"secureapp:auth_ratelimit:{key}"
                count = self.redis.get(full_key)
                return int(count) if count else 0
            except redis.RedisError as e:
                logger.warning(f"Redis error in auth rate limit check: {e}")

        # In-memory fallback
        now = time.time()
        if key not in self._memory_store:
            return 0
        self._memory_store[key] = [
            ts for ts in self._memory_store[key]
            if now - ts < window_seconds
        ]
        return len(self._memory_store[key])

    def _increment(self, key: str, window_seconds: int) -> int:
        """Increment counter for a key."""
        if self.redis is not None:
            try:
                full_key = f"secureapp:auth_ratelimit:{key}"
                pipe = self.redis.pipeline()
                pipe.incr(full_key)
                pipe.expire(full_key, window_seconds)
                results = pipe.execute()
                return results[0]
            except redis.RedisError as e:
                logger.warning(f"Redis error in auth rate limit increment: {e}")

        # In-memory fallback
        now = time.time()
        if key not in self._memory_store:
            self._memory_store[key] = []
        self._memory_store[key] = [
            ts for ts in self._memory_store[key]
            if now - ts < window_seconds
        ]
        self._memory_store[key].append(now)
        return len(self._memory_store[key])

    def check_register_limit(self, ip: str) -> tuple[bool, int]:
        """
        Check if IP is within register rate limit.

        Returns:
            Tuple of (allowed, remaining_requests)
        """
        count = self._get_count(f"register:{ip}", 3600)  # 1 hour window
        remaining = self.register_limit - count
        return remaining > 0, max(0, remaining)

    def check_login_limit(self, ip: str) -> tuple[bool, int]:
        """
        Check if IP is within login rate limit.

        Returns:
            Tuple of (allowed, remaining_requests)
        """
        count = self._get_count(f"login:{ip}", 900)  # 15 minute window
        remaining = self.login_limit - count
        return remaining > 0, max(0, remaining)

    def check_email_limit(self, ip: str) -> tuple[bool, int]:
        """Check if IP is within the verification-email rate limit."""
        count = self._get_count(f"email:{ip}", 3600)
        remaining = self.email_limit - count
        return remaining > 0, max(0, remaining)

    def record_register(self, ip: str) -> None:
        """Record a register attempt from an IP."""
        self._increment(f"register:{ip}", 3600)

    def record_login(self, ip: str) -> None:
        """Record a login attempt from an IP."""
        self._increment(f"login:{ip}", 900)

    def record_email(self, ip: str) -> None:
        self._increment(f"email:{ip}", 3600)


# Singleton auth rate limiter
_auth_rate_limiter: Optional[AuthRateLimiter] = None


def get_auth_rate_limiter() -> AuthRateLimiter:
    """Get singleton auth rate limiter."""
    global _auth_rate_limiter
    if _auth_rate_limiter is None:
        _auth_rate_limiter = AuthRateLimiter(get_redis_client())
    return _auth_rate_limiter


def _rate_limit_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def check_register_rate_limit(request: Request) -> None:
    """
    Dependency to check register rate limit by IP.

    Raises HTTPException 429 if limit exceeded.
    """
    if not _rate_limit_enabled():
        return
    ip = _client_ip(request)
    limiter = get_auth_rate_limiter()

    allowed, _ = limiter.check_register_limit(ip)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many registration attempts. Try again later.",
            headers={
                "Retry-After": "3600",
                "X-RateLimit-Remaining": "0",
            },
        )

    # Record this attempt
    limiter.record_register(ip)


async def check_login_rate_limit(request: Request) -> None:
    """
    Dependency to check login rate limit by IP.

    Raises HTTPException 429 if limit exceeded.
    """
    if not _rate_limit_enabled():
        return
    ip = _client_ip(request)
    limiter = get_auth_rate_limiter()

    allowed, _ = limiter.check_login_limit(ip)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts from this IP. Try again later.",
            headers={
                "Retry-After": "900",
                "X-RateLimit-Remaining": "0",
            },
        )

    limiter.record_login(ip)


async def check_email_rate_limit(request: Request) -> None:
    """
    Dependency to check verification-email rate limit by IP.

    Raises HTTPException 429 if limit exceeded.
    """
    if not _rate_limit_enabled():
        return
    ip = _client_ip(request)
    limiter = get_auth_rate_limiter()

    allowed, _ = limiter.check_email_limit(ip)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many verification emails requested. Try again later.",
            headers={
                "Retry-After": "3600",
                "X-RateLimit-Remaining": "0",
            },
        )

    limiter.record_email(ip)
