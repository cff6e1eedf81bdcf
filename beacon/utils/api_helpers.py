import redis
import structlog
from functools import wraps
from flask import request, jsonify, current_app, g
from typing import Callable, Optional

logger = structlog.get_logger(__name__)

# Note: 'redis_client_provider' and the limit providers are resolved on every
# call so the decorator can be applied at import time, before the app exists.
# Example: @rate_limit(lambda: current_app.redis_client, max_calls=100)

def _resolve(value):
    return value() if callable(value) else value

def get_client_identifier() -> str:
    """Rate limit bucket owner: the authenticated application if any, else the client IP."""
    application = getattr(g, 'application', None)
    if application is not None:
        return f"app:{application.application_id}"
    forwarded = request.headers.get('X-Forwarded-For', '')
    client_ip = forwarded.split(',')[0].strip() if forwarded else request.remote_addr
    return f"ip:{client_ip}"

def rate_limit(redis_client_provider: Callable[[], Optional[redis.Redis]], max_calls=100, per_seconds=60, scope: Optional[str] = None):
    """
    Fixed-window rate limiting decorator for API endpoints backed by Redis.

    max_calls and per_seconds may be ints or zero-argument callables (e.g.
    reading current_app.config). Fails open when Redis is unavailable.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            redis_client = redis_client_provider()
            if not redis_client:
                logger.debug("Redis client not available for rate limiting", endpoint=func.__name__)
                return func(*args, **kwargs)

            limit = int(_resolve(max_calls))
            window = int(_resolve(per_seconds))
            limit_key = f"rl:{scope or func.__name__}:{get_client_identifier()}"

            try:
                # Atomic incr and TTL read
                pipe = redis_client.pipeline()
                pipe.incr(limit_key)
                pipe.ttl(limit_key)
                count, ttl = pipe.execute()
                if ttl < 0:
                    # Window is fixed from the first hit; a counter left without
                    # an expiry by a failed call gets one on the next request
                    redis_client.expire(limit_key, window)

                if count > limit:
                    logger.info("Rate limit exceeded", limit_key=limit_key, count=count, limit=limit)
                    response = jsonify({
                        "error": "Rate limit exceeded",
                        "message": f"Maximum {limit} requests per {window} seconds",
                        "status_code": 429
                    })
                    response.headers["Retry-After"] = str(window)
                    return response, 429

            except redis.RedisError as e:
                # Fail open: a broken limiter must not take the API down
                logger.warning("Redis rate limiting error, allowing request", limit_key=limit_key, error=str(e))

            return func(*args, **kwargs)
        return wrapper
    return decorator
