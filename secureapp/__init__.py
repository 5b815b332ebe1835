"""
SecureApp - Layered Authentication Service

Password, TOTP and email-verification credentials for user accounts.

This package provides the credential store, the enrollment and login
state machines, mail delivery with an outbox, and a FastAPI service layer.
"""

__version__ = "0.1.0"
__author__ = "SecureApp Team"
