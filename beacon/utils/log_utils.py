#!/usr/bin/env python3
"""
Logging Utilities

This module provides standardized logging setup and the Flask request hooks
that bind a request_id to every log line.
"""

import os
import sys
import json
import logging
import time
import uuid
from typing import Optional
from flask import Request, Response, g, request
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

# Headers never written to the logs verbatim
REDACTED_HEADERS = ("authorization", "x-api-key", "cookie")
# Top-level body fields and query args never written verbatim
REDACTED_FIELDS = ("api_key",)

# --- structlog configuration ---

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars, # request_id and other bound values
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.dict_tracebacks,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# --- Standard logging setup (for handlers) ---

def setup_standard_logging(log_file: Optional[str] = None, level: int = logging.INFO):
    """
    Sets up standard logging handlers (Console, File).
    structlog will use these handlers for output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers (important for reconfiguration)
    root_logger.handlers.clear()

    # structlog already renders JSON, no formatter needed
    console_handler = logging.StreamHandler(sys.stdout)
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        root_logger.addHandler(logging.FileHandler(log_file))


def initialize_logging(log_level_name: str = 'INFO', log_file: Optional[str] = None):
    """
    Call this once at application startup to configure logging handlers.
    """
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    setup_standard_logging(log_file=log_file, level=log_level)
    structlog.get_logger(__name__).info("Logging initialized", log_level=log_level_name, log_file=log_file or 'console')


# --- Request/Response Logging ---

def _redacted_headers(headers) -> dict:
    cleaned = dict(headers)
    for name in list(cleaned):
        if name.lower() in REDACTED_HEADERS:
            cleaned[name] = "<redacted>"
    return cleaned


def _redacted_fields(data):
    if not isinstance(data, dict):
        return data
    return {key: ("<redacted>" if key in REDACTED_FIELDS else value) for key, value in data.items()}


def log_request(req: Request) -> None:
    """
    Log details about an HTTP request using structlog.
    The request_id is merged in from contextvars.
    """
    logger = structlog.get_logger('request_logger')
    g.request_start_time = time.time()

    # Event bodies are small; anything unparseable is noted rather than logged
    request_data = None
    if req.is_json:
        request_data = req.get_json(silent=True)
        if request_data is None:
            request_data = "<Invalid JSON>"

    logger.info(
        "Incoming request",
        method=req.method,
        path=req.path,
        remote_addr=req.remote_addr,
        headers=_redacted_headers(req.headers),
        args=_redacted_fields(req.args.to_dict()),
        body=_redacted_fields(request_data),
    )


def log_response(response: Response) -> None:
    """
    Log details about an HTTP response using structlog.
    """
    logger = structlog.get_logger('request_logger')

    duration_ms = None
    if hasattr(g, 'request_start_time'):
        duration_ms = (time.time() - g.request_start_time) * 1000

    response_data = None
    if response.content_length is not None and response.content_length < 1024 * 10:
        if response.is_json:
            try:
                response_data = json.loads(response.get_data(as_text=True))
            except ValueError:
                response_data = "<Unparseable Response Body>"
    elif response.content_length is not None:
        response_data = f"<Response Body Too Large: {response.content_length} bytes>"

    logger.info(
        "Outgoing response",
        status_code=response.status_code,
        duration_ms=duration_ms,
        body=_redacted_fields(response_data),
    )


# --- Flask Request Hook Setup ---

def setup_request_logging(app):
    """
    Set up Flask before/after request hooks for logging.
    Each request gets a fresh request_id bound through structlog contextvars.
    """

    @app.before_request
    def before_request_log():
        clear_contextvars()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        g.request_id = request_id
        bind_contextvars(request_id=request_id)

        log_request(request)

    @app.after_request
    def after_request_log(response):
        log_response(response)
        if hasattr(g, 'request_id'):
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def teardown_request_log(exc=None):
        clear_contextvars()
