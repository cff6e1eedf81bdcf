#!/usr/bin/env python3
"""
Application Management API Routes

Register applications and manage the lifecycle of their API keys.
"""

import structlog
from flask import Blueprint, request, jsonify, current_app
from pydantic import BaseModel, EmailStr, Field

from .middleware.auth_middleware import require_admin_token
from .utils.request_helpers import validate_body
from ..utils.error_utils import NotFoundError

logger = structlog.get_logger(__name__)

apps_bp = Blueprint("apps", __name__)

# --- Pydantic Models for Input Validation ---

class RegisterAppSchema(BaseModel):
    app_name: str = Field(..., min_length=1, max_length=255)
    app_url: str = Field(..., min_length=1, max_length=500)
    email: EmailStr

class AppIdSchema(BaseModel):
    app_id: int = Field(..., gt=0)

class EmailQuerySchema(BaseModel):
    email: EmailStr

# --- Routes ---

@apps_bp.route("/register", methods=["POST"])
def register_app():
    """
    Register a new application and issue its API key.

    The plaintext key appears only in this response.
    """
    payload = validate_body(RegisterAppSchema, request.get_json(silent=True))
    app_info, api_key = current_app.identity_provider.register_application(
        payload.app_name, payload.app_url, str(payload.email)
    )
    return jsonify({
        "message": "App registered successfully",
        "app_id": app_info["app_id"],
        "api_key": api_key,
        "expires_at": app_info["expires_at"]
    }), 201

@apps_bp.route("/api-key", methods=["GET"])
@require_admin_token
def list_app_keys():
    """
    List the active applications registered under an email.

    API keys are stored hashed and cannot be returned; use regenerate to
    issue a new one.
    """
    query = validate_body(EmailQuerySchema, request.args.to_dict())
    apps = current_app.identity_provider.list_applications(str(query.email))
    if not apps:
        raise NotFoundError("No active apps found for this email")
    return jsonify({
        "apps": apps,
        "note": "API keys are not retrievable. Use the regenerate endpoint to create a new key."
    })

@apps_bp.route("/revoke", methods=["POST"])
@require_admin_token
def revoke_app():
    """Deactivate an application's API key. Requires the admin token."""
    payload = validate_body(AppIdSchema, request.get_json(silent=True))
    app_info = current_app.identity_provider.revoke_application(payload.app_id)
    return jsonify({"message": "API key revoked successfully", "app_id": app_info["app_id"]})

@apps_bp.route("/regenerate", methods=["POST"])
@require_admin_token
def regenerate_app_key():
    """Issue a new API key, reactivating the application. Requires the admin token."""
    payload = validate_body(AppIdSchema, request.get_json(silent=True))
    app_info, api_key = current_app.identity_provider.regenerate_key(payload.app_id)
    return jsonify({
        "message": "API key regenerated successfully",
        "app_id": app_info["app_id"],
        "api_key": api_key,
        "expires_at": app_info["expires_at"]
    })
