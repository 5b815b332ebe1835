"""
SecureApp REST API.

FastAPI-based REST API for password, TOTP and email-verified login.
"""
from .main import app, create_app

__all__ = ["app", "create_app"]
