#!/usr/bin/env python3
"""
Beacon Analytics API Server

Flask application collecting analytics events from client applications and
serving cached aggregate reports (event summaries, visitor statistics, time
series and attribute breakdowns) over them.
"""

import os
from flask import Flask, jsonify, request
from flask_cors import CORS
import redis
import structlog
from sqlalchemy.exc import SQLAlchemyError

# Import configuration first
from beacon.config import AppConfig

# Import logging utilities
from beacon.utils.log_utils import initialize_logging, setup_request_logging

# Import route blueprints
from beacon.api.analytics_routes import analytics_bp
from beacon.api.app_routes import apps_bp
from beacon.api.routes.health import health_bp
from beacon.api.routes.root import root_bp

# Import error handling utilities
from beacon.utils.error_utils import APIError, format_error_response
from werkzeug.exceptions import MethodNotAllowed, NotFound

# Import Service Classes for Initialization
from beacon.analytics.analytics_service import AnalyticsService
from beacon.analytics.cache import AggregateCache, AggregateKind
from beacon.db.db_utils import create_session_factory
from beacon.db.event_store import SqlEventStore
from beacon.db.identity_provider import SqlIdentityProvider
from beacon.db.models import Base

# Initialize logger early for potential issues during import or setup
logger = structlog.get_logger(__name__)

def create_app(config_object=AppConfig):
    """Factory function to create and configure the Flask application."""
    app = Flask(__name__)

    # --- Load Configuration from Config Object --- #
    app.config.from_object(config_object)

    # --- Initialize Structured Logging --- #
    initialize_logging(log_level_name=app.config.get('LOG_LEVEL', 'INFO'), log_file=app.config.get('LOG_FILE'))
    setup_request_logging(app) # Set up before/after request hooks
    logger.info("Flask application configuration loaded.", config_env=app.config.get('FLASK_ENV', 'production'))

    # --- CORS Configuration --- #
    CORS(app, resources={
        r"/api/*": {
            "origins": app.config.get('FRONTEND_URL', '*'),
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-API-Key", "X-Request-ID"]
        }
    })
    logger.info("CORS configured.", allowed_origins=app.config.get('FRONTEND_URL', '*'))

    # --- SQLAlchemy Setup --- #
    app.db_engine, app.db_session_factory = create_session_factory(
        app.config['DATABASE_URL'],
        timeout_seconds=app.config.get('EVENT_STORE_TIMEOUT_SECONDS', 5),
        pool_size=app.config.get('DB_POOL_SIZE', 10)
    )
    if app.config.get('DB_CREATE_TABLES', True):
        try:
            Base.metadata.create_all(app.db_engine)
            logger.info("Database tables ensured.")
        except SQLAlchemyError as e:
            # The store reports 503 per request until the database is reachable
            logger.error("Could not create database tables.", error=str(e))

    # --- Redis Setup --- #
    redis_url = app.config.get('REDIS_URL')
    app.redis_client = None
    if redis_url:
        cache_timeout = app.config.get('CACHE_TIMEOUT_SECONDS', 0.5)
        app.redis_client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=cache_timeout,
            socket_connect_timeout=cache_timeout
        )
        try:
            app.redis_client.ping() # Test connection
            logger.info("Redis client connected successfully.")
        except redis.exceptions.RedisError as e:
            # Cache reads miss and rate limiting fails open until Redis is back
            logger.error("Failed to connect to Redis. Serving without cache.", error=str(e))
    else:
        logger.warning("REDIS_URL not configured. Aggregate cache and rate limiting disabled.")

    # --- Service Initialization --- #
    app.event_store = SqlEventStore(app.db_session_factory)
    app.identity_provider = SqlIdentityProvider(
        app.db_session_factory,
        key_ttl_days=app.config.get('API_KEY_TTL_DAYS', 365)
    )
    app.aggregate_cache = AggregateCache(app.redis_client, ttl_seconds={
        AggregateKind.EVENT_SUMMARY: app.config.get('EVENT_SUMMARY_TTL_SECONDS', 300),
        AggregateKind.USER_STATS: app.config.get('USER_STATS_TTL_SECONDS', 600),
    })
    app.analytics_service = AnalyticsService(
        app.event_store,
        app.aggregate_cache,
        max_buckets=app.config.get('TIME_SERIES_MAX_BUCKETS', 100)
    )

    # --- Register Blueprints --- #
    api_version = app.config.get('API_VERSION', 'v1')
    api_prefix = f"/api/{api_version}"

    app.register_blueprint(analytics_bp, url_prefix=f'{api_prefix}/analytics')
    app.register_blueprint(apps_bp, url_prefix=f'{api_prefix}/apps')
    app.register_blueprint(health_bp, url_prefix=api_prefix)
    app.register_blueprint(root_bp) # Root blueprint has no prefix
    logger.info("API blueprints registered.", api_prefix=api_prefix)

    # --- Centralized Error Handling --- #
    error_logger = structlog.get_logger("error_handler")

    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):
        """Handle custom APIErrors and return standardized JSON response."""
        error_logger.warning("API Error occurred",
                             error_message=error.message,
                             status_code=error.status_code,
                             details=error.details,
                             exception_type=type(error).__name__,
                             path=request.path,
                             method=request.method)
        response_dict, status_code = format_error_response(error)
        return jsonify(response_dict), status_code

    @app.errorhandler(NotFound) # Handle 404 Not Found
    def handle_not_found(error: NotFound):
        """Handle Flask's default 404 and return JSON."""
        error_logger.info("Resource not found (404)", path=request.path, method=request.method)
        return jsonify({
            "error": "Not Found",
            "message": "The requested URL was not found on the server.",
            "status_code": 404
        }), 404

    @app.errorhandler(MethodNotAllowed)
    def handle_method_not_allowed(error: MethodNotAllowed):
        return jsonify({
            "error": "Method Not Allowed",
            "message": f"{request.method} is not allowed on this URL.",
            "status_code": 405
        }), 405

    @app.errorhandler(Exception) # Catch-all for other exceptions (500)
    def handle_generic_exception(error: Exception):
        """Handle unexpected exceptions and return a generic 500 error."""
        error_logger.error("Unhandled exception occurred",
                           error=str(error),
                           exception_type=type(error).__name__,
                           path=request.path,
                           method=request.method,
                           exc_info=True)
        return jsonify({
            "error": "Internal Server Error",
            "message": "An unexpected error occurred on the server.",
            "status_code": 500
        }), 500

    logger.info("Centralized error handlers registered.")

    return app

# Create the Flask app instance using the factory
app = create_app()

if __name__ == "__main__":
    host = os.getenv('HOST', '0.0.0.0')
    port = int(os.getenv('PORT', 5000))
    debug_mode = app.config.get('DEBUG', False)

    logger.info("Starting Flask development server", host=host, port=port, debug=debug_mode)
    if not debug_mode:
        logger.warning("Running Flask development server in non-debug mode. Use Gunicorn for production.")
    app.run(host=host, port=port, debug=debug_mode)
