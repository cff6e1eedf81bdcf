#!/usr/bin/env python3
"""
Analytics API Routes

Event collection and aggregate reporting endpoints. Every endpoint is scoped
to the application behind the presented API key.
"""

import structlog
from flask import Blueprint, request, jsonify, g, current_app
from typing import Any, Dict, Optional
from pydantic import AliasChoices, BaseModel, Field

# Import authentication utilities
from .middleware.auth_middleware import require_app_key

# Import request helpers
from .utils.request_helpers import parse_date_range_args, parse_timestamp, validate_body

from ..utils.api_helpers import rate_limit
from ..utils.error_utils import ForbiddenError, NotFoundError, ValidationError

# Configure logger
logger = structlog.get_logger(__name__)

# Create Blueprint
analytics_bp = Blueprint("analytics", __name__)

def _redis():
    return current_app.redis_client

def _window():
    return current_app.config.get('RATE_LIMIT_WINDOW_SECONDS', 60)

def _collect_limit():
    return current_app.config.get('COLLECT_RATE_LIMIT', 100)

def _analytics_limit():
    return current_app.config.get('ANALYTICS_RATE_LIMIT', 50)

# --- Pydantic Models for Input Validation ---

class CollectEventSchema(BaseModel):
    # Presence of event/url is enforced by AnalyticsService.ingest
    event: Optional[str] = Field(None, validation_alias=AliasChoices("event", "event_name"), max_length=100)
    url: Optional[str] = Field(None, max_length=500)
    referrer: Optional[str] = Field(None, max_length=500)
    device: Optional[str] = Field(None, max_length=50)
    visitor_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("visitor_id", "visitor_identifier", "ipAddress"),
        max_length=255
    )
    timestamp: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

# --- Routes ---

@analytics_bp.route("/collect", methods=["POST"])
@require_app_key
@rate_limit(_redis, max_calls=_collect_limit, per_seconds=_window, scope="collect")
def collect_event():
    """
    Record one analytics event for the authenticated application.

    Returns:
        201: {"message", "event_id"}
        400: Missing event or url, malformed body or timestamp
        401/403: Missing, unknown, revoked or expired API key
        503: Event store unavailable
    """
    payload = validate_body(CollectEventSchema, request.get_json(silent=True))
    timestamp = parse_timestamp(payload.timestamp, field="timestamp")

    event_id = current_app.analytics_service.ingest(
        application_id=g.application.application_id,
        event_name=payload.event,
        url=payload.url,
        referrer=payload.referrer,
        device=payload.device,
        visitor_identifier=payload.visitor_id,
        timestamp=timestamp,
        metadata=payload.metadata,
    )
    return jsonify({"message": "Event recorded successfully", "event_id": event_id}), 201

def _resolve_target_application(app_id_arg: Optional[str]) -> int:
    """
    Application an event-summary request is about.

    An explicit app_id must name the caller's own application: unknown ids
    are 404, ids of other applications are 403.
    """
    caller_id = g.application.application_id
    if app_id_arg is None or app_id_arg == "":
        return caller_id

    try:
        requested_id = int(app_id_arg)
    except ValueError:
        raise ValidationError("app_id must be an integer", field="app_id")

    if requested_id == caller_id:
        return caller_id

    if current_app.identity_provider.get_application(requested_id) is None:
        raise NotFoundError(f"App {requested_id} not found")

    logger.warning("Cross-application summary request refused", caller_id=caller_id, requested_id=requested_id)
    raise ForbiddenError("API key does not grant access to this application")

@analytics_bp.route("/event-summary", methods=["GET"])
@require_app_key
@rate_limit(_redis, max_calls=_analytics_limit, per_seconds=_window, scope="analytics")
def event_summary():
    """
    Count, unique visitors and device histogram for one event.

    Query Parameters:
        event: Event name (required)
        start_date, end_date: Optional ISO 8601 bounds, inclusive
        app_id: Optional, must be the caller's own application
    """
    event_name = request.args.get("event")
    if not event_name:
        raise ValidationError("event parameter is required", field="event")
    start_date, end_date = parse_date_range_args(request.args)
    application_id = _resolve_target_application(request.args.get("app_id"))

    summary = current_app.analytics_service.event_summary(application_id, event_name, start_date, end_date)
    return jsonify(summary)

@analytics_bp.route("/user-stats", methods=["GET"])
@require_app_key
@rate_limit(_redis, max_calls=_analytics_limit, per_seconds=_window, scope="analytics")
def user_stats():
    """Totals, per-event breakdown and last seen attributes for one visitor."""
    visitor_id = request.args.get("visitor_id") or request.args.get("userId")
    if not visitor_id:
        raise ValidationError("visitor_id parameter is required", field="visitor_id")

    stats = current_app.analytics_service.user_stats(g.application.application_id, visitor_id)
    return jsonify(stats)

@analytics_bp.route("/time-series", methods=["GET"])
@require_app_key
@rate_limit(_redis, max_calls=_analytics_limit, per_seconds=_window, scope="analytics")
def time_series():
    """
    Event counts bucketed by hour, day, week or month, newest first.

    Query Parameters:
        event: Event name (required)
        interval: hour | day | week | month (default day)
        start_date, end_date: Optional ISO 8601 bounds
    """
    event_name = request.args.get("event")
    if not event_name:
        raise ValidationError("event parameter is required", field="event")
    start_date, end_date = parse_date_range_args(request.args)
    interval = request.args.get("interval") or "day"

    series = current_app.analytics_service.time_series(
        g.application.application_id, event_name, start_date, end_date, interval
    )
    return jsonify({"time_series": series})

def _breakdown_response(dimension: str):
    start_date, end_date = parse_date_range_args(request.args)
    rows = current_app.analytics_service.breakdown(g.application.application_id, dimension, start_date, end_date)
    return jsonify({"dimension": dimension, "breakdown": rows})

@analytics_bp.route("/breakdown-by-device", methods=["GET"])
@require_app_key
@rate_limit(_redis, max_calls=_analytics_limit, per_seconds=_window, scope="analytics")
def breakdown_by_device():
    return _breakdown_response("device")

@analytics_bp.route("/breakdown-by-browser", methods=["GET"])
@require_app_key
@rate_limit(_redis, max_calls=_analytics_limit, per_seconds=_window, scope="analytics")
def breakdown_by_browser():
    return _breakdown_response("browser")

@analytics_bp.route("/breakdown-by-url", methods=["GET"])
@require_app_key
@rate_limit(_redis, max_calls=_analytics_limit, per_seconds=_window, scope="analytics")
def breakdown_by_url():
    return _breakdown_response("url")

@analytics_bp.route("/breakdown-by-referrer", methods=["GET"])
@require_app_key
@rate_limit(_redis, max_calls=_analytics_limit, per_seconds=_window, scope="analytics")
def breakdown_by_referrer():
    return _breakdown_response("referrer")
