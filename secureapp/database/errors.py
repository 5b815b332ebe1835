"""
Errors raised by the credential stores.
"""


class StoreError(Exception):
    """Base class for credential store errors."""
    status_code = 400


class ConflictError(StoreError):
    """Raised when registering an email that already has an account."""
    status_code = 409

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User with email '{email}' already exists")


class UserNotFoundError(StoreError):
    """Raised when a user record is required but absent."""
    status_code = 404

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"No user with email '{email}'")
