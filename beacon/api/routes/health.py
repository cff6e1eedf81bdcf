from flask import Blueprint, jsonify, current_app
from typing import Any, Dict
from sqlalchemy import text

from ...utils.api_helpers import rate_limit

import structlog

health_bp = Blueprint('health', __name__)

logger = structlog.get_logger(__name__)

# --- Helper Functions for Health Check Logic ---

def _check_redis_status(redis_client) -> Dict[str, Any]:
    """Checks Redis connection status."""
    try:
        if redis_client and redis_client.ping():
            return {"status": "healthy"}
        logger.warning("Redis client not available or ping failed.")
        return {"status": "unhealthy", "error": "Redis connection failed or client not configured."}
    except Exception as e:
        logger.error("Error checking Redis status", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

def _check_database_status(engine) -> Dict[str, Any]:
    """Checks that the event store database answers a trivial query."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as e:
        logger.error("Error checking database status", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

# --- End Helper Functions ---

@health_bp.route('/health')
@rate_limit(lambda: current_app.redis_client,
            max_calls=lambda: current_app.config.get('HEALTH_RATE_LIMIT', 10),
            per_seconds=lambda: current_app.config.get('RATE_LIMIT_WINDOW_SECONDS', 60),
            scope="health")
def health_check():
    """
    API endpoint to check service health.

    The database is required: the endpoint answers 503 when it is down.
    Redis only backs the cache and rate limiter, so an unhealthy Redis is
    reported as degraded with a 200.
    """
    database_status = _check_database_status(current_app.db_engine)
    redis_status = _check_redis_status(current_app.redis_client)

    if database_status["status"] != "healthy":
        overall, status_code = "error", 503
    elif redis_status["status"] != "healthy":
        overall, status_code = "degraded", 200
    else:
        overall, status_code = "ok", 200

    return jsonify({
        "status": overall,
        "version": current_app.config.get('API_VERSION', 'v1'),
        "services": {
            "database": database_status,
            "redis": redis_status
        }
    }), status_code
