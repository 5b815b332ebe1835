"""
SQL Database Manager for Authentication.

This module provides connection management and operations for:
- User accounts (email, password hash, MFA state, email verification)
- Pending TOTP secrets awaiting enrollment confirmation
- Email verification challenges
- Sessions

Works with any SQLAlchemy URL: PostgreSQL in production, SQLite for
local development and tests.
"""
import os
import logging
from typing import Optional
from contextlib import contextmanager

import bcrypt
from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from .errors import ConflictError, UserNotFoundError
from .records import UserRecord, PendingSecret, EmailChallenge, SessionRecord
from .store import CredentialStore
from ..utils.secrets import get_secret, mask_email

logger = logging.getLogger(__name__)


class AuthDB(CredentialStore):
    """
    SQL-backed credential store.

    Example usage:
        auth_db = AuthDB("sqlite:///auth.db")
        auth_db.init_schema()

        # Create user
        auth_db.create_user("user@example.com", hashed_password)

        # Promote a confirmed TOTP secret
        auth_db.update_mfa("user@example.com", secret)
    """

    def __init__(self, connection_string: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            connection_string: SQLAlchemy connection string.
                             Uses environment variables if not provided.
        """
        super().__init__()
        if connection_string is None:
            host = os.getenv("POSTGRES_HOST", "localhost")
            port = os.getenv("POSTGRES_PORT", "5432")
            db = os.getenv("POSTGRES_DB", "secureapp")
            user = os.getenv("POSTGRES_USER", "secureapp_user")
            password = get_secret("POSTGRES_PASSWORD", "")
            connection_string = f"postgresql://{user}:{password}@{host}:{port}/{db}"

        if connection_string.startswith("sqlite"):
            self.engine = create_engine(
                connection_string,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(
                connection_string,
                poolclass=QueuePool,
                pool_size=10,
                max_overflow=20,
                pool_timeout=30,
                pool_pre_ping=True,  # Test connections before use (detect stale)
                pool_recycle=300,    # Recycle connections every 5 minutes
            )
        self.Session = sessionmaker(bind=self.engine)

    @contextmanager
    def get_session(self):
        """
        Get a database session with automatic cleanup.

        Usage:
            with auth_db.get_session() as session:
                result = session.execute(query)
        """
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ==========================================
    # User Records
    # ==========================================

    def create_user(self, email: str, password_ref: str) -> UserRecord:
        """
        Create a new user account.

        Args:
            email: User's email address (stored as given).
            password_ref: Bcrypt-hashed password.

        Returns:
            The created UserRecord.

        Raises:
            ConflictError: If email already exists.
        """
        try:
            with self._lock, self.get_session() as session:
                result = session.execute(
                    text("SELECT email FROM users WHERE email = :email"),
                    {"email": email}
                ).fetchone()

                if result:
                    raise ConflictError(email)

                session.execute(
                    text("""
                        INSERT INTO users (
                            email, password_ref, mfa_enabled, mfa_secret, email_verified
                        ) VALUES (
                            :email, :password_ref, FALSE, NULL, FALSE
                        )
                    """),
                    {"email": email, "password_ref": password_ref}
                )
        except IntegrityError:
            # Concurrent insert from another process won the race
            raise ConflictError(email)

        logger.info(f"Created user: {mask_email(email)}")
        return UserRecord(email=email, password_ref=password_ref)

    def find_user(self, email: str) -> Optional[UserRecord]:
        """
        Get user by email address.

        Returns:
            UserRecord or None if not found.
        """
        with self.get_session() as session:
            result = session.execute(
                text("""
                    SELECT email, password_ref, mfa_enabled, mfa_secret, email_verified
                    FROM users
                    WHERE email = :email
                """),
                {"email": email}
            ).fetchone()

            if not result:
                return None

            return UserRecord(
                email=result[0],
                password_ref=result[1],
                mfa_enabled=bool(result[2]),
                mfa_secret=result[3],
                email_verified=bool(result[4]),
            )

    def update_mfa(self, email: str, secret: str) -> None:
        with self.get_session() as session:
            result = session.execute(
                text("""
                    UPDATE users
                    SET mfa_secret = :secret, mfa_enabled = TRUE
                    WHERE email = :email
                """),
                {"email": email, "secret": secret}
            )
            if result.rowcount == 0:
                raise UserNotFoundError(email)
        logger.info(f"Enabled MFA for user {mask_email(email)}")

    def set_email_verified(self, email: str) -> None:
        with self.get_session() as session:
            result = session.execute(
                text("UPDATE users SET email_verified = TRUE WHERE email = :email"),
                {"email": email}
            )
            if result.rowcount == 0:
                raise UserNotFoundError(email)

    # ==========================================
    # Pending TOTP Secrets
    # ==========================================

    def put_pending_secret(self, pending: PendingSecret) -> None:
        with self.get_session() as session:
            session.execute(
                text("DELETE FROM pending_secrets WHERE email = :email"),
                {"email": pending.email}
            )
            session.execute(
                text("""
                    INSERT INTO pending_secrets (email, secret_value)
                    VALUES (:email, :secret_value)
                """),
                {"email": pending.email, "secret_value": pending.secret_value}
            )

    def get_pending_secret(self, email: str) -> Optional[PendingSecret]:
        with self.get_session() as session:
            result = session.execute(
                text("SELECT email, secret_value FROM pending_secrets WHERE email = :email"),
                {"email": email}
            ).fetchone()
            if not result:
                return None
            return PendingSecret(email=result[0], secret_value=result[1])

    def delete_pending_secret(self, email: str) -> None:
        with self.get_session() as session:
            session.execute(
                text("DELETE FROM pending_secrets WHERE email = :email"),
                {"email": email}
            )

    # ==========================================
    # Email Challenges
    # ==========================================

    def put_email_challenge(self, challenge: EmailChallenge) -> None:
        with self.get_session() as session:
            session.execute(
                text("DELETE FROM email_challenges WHERE email = :email"),
                {"email": challenge.email}
            )
            session.execute(
                text("""
                    INSERT INTO email_challenges (email, code, expires_at)
                    VALUES (:email, :code, :expires_at)
                """),
                {
                    "email": challenge.email,
                    "code": challenge.code,
                    "expires_at": challenge.expires_at,
                }
            )

    def get_email_challenge(self, email: str) -> Optional[EmailChallenge]:
        with self.get_session() as session:
            result = session.execute(
                text("SELECT email, code, expires_at FROM email_challenges WHERE email = :email"),
                {"email": email}
            ).fetchone()
            if not result:
                return None
            return EmailChallenge(email=result[0], code=result[1], expires_at=float(result[2]))

    def delete_email_challenge(self, email: str) -> None:
        with self.get_session() as session:
            session.execute(
                text("DELETE FROM email_challenges WHERE email = :email"),
                {"email": email}
            )

    # ==========================================
    # Sessions
    # ==========================================

    def put_session_record(self, record: SessionRecord) -> None:
        with self.get_session() as session:
            session.execute(
                text("""
                    INSERT INTO sessions (session_token, email, expires_at)
                    VALUES (:token, :email, :expires_at)
                """),
                {"token": record.token, "email": record.email, "expires_at": record.expires_at}
            )
        logger.debug("Created session")

    def get_session_record(self, token: str) -> Optional[SessionRecord]:
        with self.get_session() as session:
            result = session.execute(
                text("""
                    SELECT session_token, email, expires_at
                    FROM sessions
                    WHERE session_token = :token
                """),
                {"token": token}
            ).fetchone()
            if not result:
                return None
            return SessionRecord(token=result[0], email=result[1], expires_at=float(result[2]))

    def delete_session_record(self, token: str) -> None:
        with self.get_session() as session:
            session.execute(
                text("DELETE FROM sessions WHERE session_token = :token"),
                {"token": token}
            )
        logger.debug("Invalidated session")

    def ping(self) -> bool:
        with self.get_session() as session:
            session.execute(text("SELECT 1"))
        return True

    # ==========================================
    # Schema Management
    # ==========================================

    def init_schema(self) -> None:
        """
        Create tables if they do not exist.
        """
        statements = [
            """
            CREATE TABLE IF NOT EXISTS users (
                email VARCHAR(320) PRIMARY KEY,
                password_ref VARCHAR(255) NOT NULL,
                mfa_enabled BOOLEAN NOT NULL DEFAULT FALSE,
                mfa_secret VARCHAR(64),
                email_verified BOOLEAN NOT NULL DEFAULT FALSE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS pending_secrets (
                email VARCHAR(320) PRIMARY KEY,
                secret_value VARCHAR(64) NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS email_challenges (
                email VARCHAR(320) PRIMARY KEY,
                code VARCHAR(6) NOT NULL,
                expires_at DOUBLE PRECISION NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS sessions (
                session_token VARCHAR(64) PRIMARY KEY,
                email VARCHAR(320) NOT NULL,
                expires_at DOUBLE PRECISION NOT NULL
            )
            """,
        ]
        with self.get_session() as session:
            for statement in statements:
                session.execute(text(statement))
        logger.info("Database schema initialized")


# ==========================================
# Password Hashing Utilities
# ==========================================

# bcrypt only reads the first 72 bytes; bcrypt>=5 rejects longer input
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password, at most MAX_PASSWORD_BYTES in UTF-8.

    Returns:
        Bcrypt hash string.

    Raises:
        ValueError: If the password is longer than MAX_PASSWORD_BYTES.
    """
    encoded = password.encode('utf-8')
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(encoded, salt).decode('utf-8')


def verify_password(password_hash: str, password: str) -> bool:
    """
    Verify a supplied password against its stored hash.

    Args:
        password_hash: Stored bcrypt hash.
        password: Plain text password to verify.

    Returns:
        True if password matches, False otherwise (including malformed hashes).
    """
    if not password_hash or password is None:
        return False
    try:
        return bcrypt.checkpw(
            password.encode('utf-8'),
            password_hash.encode('utf-8')
        )
    except ValueError:
        return False
