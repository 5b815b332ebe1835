"""
Credential stores for SecureApp.

This package provides:
- store: CredentialStore interface and the in-memory implementation
- auth_db: SQL (PostgreSQL / SQLite) implementation and password hashing
- records: user, pending-secret, challenge and session records
"""
from .errors import StoreError, ConflictError, UserNotFoundError
from .records import UserRecord, PendingSecret, EmailChallenge, SessionRecord
from .store import CredentialStore, InMemoryCredentialStore
from .auth_db import AuthDB, MAX_PASSWORD_BYTES, hash_password, verify_password

__all__ = [
    "StoreError",
    "ConflictError",
    "UserNotFoundError",
    "UserRecord",
    "PendingSecret",
    "EmailChallenge",
    "SessionRecord",
    "CredentialStore",
    "InMemoryCredentialStore",
    "AuthDB",
    "MAX_PASSWORD_BYTES",
    "hash_password",
    "verify_password",
]
