#!/usr/bin/env python3
"""
Authentication Utilities

API key generation and hashing, plus the admin bearer token check used by the
application management endpoints.
"""

import hashlib
import hmac
import secrets
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

API_KEY_PREFIX = "bk"


def generate_api_key(prefix: str = API_KEY_PREFIX) -> str:
    """
    Generate a secure random API key with a prefix.
    Ensures the random part does not contain underscores to allow reliable splitting.

    Args:
        prefix: A short prefix for the key.

    Returns:
        API key string in the format "prefix_randompart".
    """
    random_part = secrets.token_urlsafe(32).replace('_', '-')
    key = f"{prefix}_{random_part}"
    logger.debug("Generated new API key", key_prefix=prefix)
    return key


def hash_api_key(api_key: str) -> str:
    """
    SHA-256 hex digest of an API key.

    The digest is deterministic so the stored hash doubles as the lookup key;
    keys are 256-bit random values, so a salted slow hash buys nothing here.
    """
    if not api_key:
        raise ValueError("API key must be a non-empty string")
    return hashlib.sha256(api_key.encode('utf-8')).hexdigest()


def key_preview(api_key: Optional[str]) -> str:
    """Short, log-safe prefix of a presented key."""
    if not api_key:
        return "<none>"
    return api_key[:6] + "..."


def verify_admin_token(presented: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison of a presented bearer token against ADMIN_TOKEN."""
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode('utf-8'), expected.encode('utf-8'))
