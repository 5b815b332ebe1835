"""
Shared utilities for SecureApp.

This package provides:
- Secrets and configuration lookup
- Masking helpers for safe logging
"""
from .secrets import get_secret, mask_secret, mask_email

__all__ = ["get_secret", "mask_secret", "mask_email"]
