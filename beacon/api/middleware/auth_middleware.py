#!/usr/bin/env python3
"""
Authentication Middleware

Resolves the API key presented with a request to the application it belongs
to. Authorization is always settled here, before any event store access.
"""

from typing import Optional
from functools import wraps
from flask import request, g, current_app
import structlog

from ...utils.auth_utils import key_preview, verify_admin_token
from ...utils.error_utils import ForbiddenError, UnauthorizedError

# Configure logger
logger = structlog.get_logger(__name__)

def get_token_from_header() -> Optional[str]:
    """
    Extract a Bearer token from the Authorization header.

    Returns:
        Token string or None if not found
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        return None

    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]

    return None

def get_api_key_from_request() -> Optional[str]:
    """
    Extract API key from request.

    Checks the 'X-API-Key' header, then the Authorization header with an
    'ApiKey' prefix, then the 'api_key' query parameter.

    Returns:
        API key string or None if not found
    """
    api_key_header = request.headers.get("X-API-Key")
    if api_key_header:
        return api_key_header.strip()

    auth_header = request.headers.get("Authorization", "")
    if auth_header:
        parts = auth_header.split()
        if len(parts) == 2 and parts[0].lower() == "apikey":
            return parts[1]

    api_key_param = request.args.get("api_key")
    if api_key_param:
        return api_key_param

    return None

def require_app_key(f):
    """
    Decorator enforcing a valid, active, non-expired application API key.

    On success the resolved ApplicationIdentity is stored in g.application.

    Raises:
        UnauthorizedError: No key presented, or the key is not recognized (401).
        ForbiddenError: The key is revoked or expired (403).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = get_api_key_from_request()
        if not api_key:
            logger.info("Request without API key", path=request.path)
            raise UnauthorizedError("API key is required")

        identity = current_app.identity_provider.resolve(api_key)
        if identity is None:
            logger.warning("Invalid API key presented", path=request.path, key_preview=key_preview(api_key))
            raise UnauthorizedError("Invalid API key")

        if not identity.active:
            logger.warning("Revoked API key presented", application_id=identity.application_id)
            raise ForbiddenError("API key has been revoked")

        if identity.is_expired():
            logger.warning("Expired API key presented", application_id=identity.application_id,
                           expires_at=identity.expires_at.isoformat())
            raise ForbiddenError("API key has expired")

        g.application = identity
        logger.debug("Authenticated via API key", application_id=identity.application_id)
        return f(*args, **kwargs)

    return decorated_function

def require_admin_token(f):
    """Decorator requiring 'Authorization: Bearer <ADMIN_TOKEN>' for management endpoints."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('ADMIN_TOKEN')
        if not expected:
            logger.error("ADMIN_TOKEN is not configured; management endpoint refused", path=request.path)
            raise ForbiddenError("Application management is disabled")

        token = get_token_from_header()
        if not token:
            raise UnauthorizedError("Admin token is required")
        if not verify_admin_token(token, expected):
            logger.warning("Invalid admin token presented", path=request.path)
            raise ForbiddenError("Invalid admin token")

        return f(*args, **kwargs)

    return decorated_function
