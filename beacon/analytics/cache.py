#!/usr/bin/env python3
"""
Aggregate Cache

Memoizes aggregation results in Redis and enforces their freshness.

Key layout:
    analytics:event-summary:<app>:end=<iso|all>:event_name=<name>:start=<iso|all>
        plain string entry, one per (application, event, date range)
    analytics:user-stats:<app>
        hash ("umbrella key"), one field per visitor; deleting the hash drops
        every visitor entry of the application at once

Every stored value is wrapped in an envelope carrying its own expiry so an
entry is never served past its TTL, even when the hash that holds it lives
longer than the entry.

The cache is strictly best-effort: Redis errors and timeouts turn reads into
misses and writes/invalidations into logged no-ops.
"""

import json
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional

import redis
import structlog

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "analytics"
# Stands in for an absent optional parameter, e.g. no start date
ALL_SENTINEL = "all"


class AggregateKind:
    """Aggregate kinds and their cache policy."""
    EVENT_SUMMARY = "event-summary"
    USER_STATS = "user-stats"
    TIME_SERIES = "time-series"
    ATTRIBUTE_BREAKDOWN = "attribute-breakdown"

    # time-series and breakdowns take arbitrary date ranges; hit rates are too
    # low to be worth the staleness, so they are never cached
    DEFAULT_TTL_SECONDS = {
        EVENT_SUMMARY: 300,
        USER_STATS: 600,
    }


class CacheKey(NamedTuple):
    """Location of one cache entry: a Redis key, plus a hash field for umbrella entries."""
    name: str
    field: Optional[str] = None


def _canonical_value(value: Any) -> str:
    if value is None or value == "":
        return ALL_SENTINEL
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def canonicalize_params(params: Dict[str, Any]) -> str:
    """Render parameters in a presentation-order independent form."""
    return ":".join(f"{name}={_canonical_value(params[name])}" for name in sorted(params))


def build_cache_key(application_id: Any, kind: str, **params) -> str:
    base = f"{CACHE_KEY_PREFIX}:{kind}:{application_id}"
    canonical = canonicalize_params(params)
    return f"{base}:{canonical}" if canonical else base


def event_summary_key(application_id: Any, event_name: str,
                      start: Optional[datetime] = None, end: Optional[datetime] = None) -> CacheKey:
    return CacheKey(build_cache_key(application_id, AggregateKind.EVENT_SUMMARY,
                                    event_name=event_name, start=start, end=end))


def user_stats_umbrella_key(application_id: Any) -> CacheKey:
    return CacheKey(build_cache_key(application_id, AggregateKind.USER_STATS))


def user_stats_key(application_id: Any, visitor_identifier: str) -> CacheKey:
    umbrella = user_stats_umbrella_key(application_id)
    return CacheKey(umbrella.name, canonicalize_params({"visitor_identifier": visitor_identifier}))


def ingestion_invalidation_keys(application_id: Any, event_name: str) -> List[CacheKey]:
    """
    Entries a new (application, event) write makes stale.

    Only the undated summary is targeted. Dated summaries for the same event
    stay cached until their own TTL lapses.
    """
    return [
        event_summary_key(application_id, event_name),
        user_stats_umbrella_key(application_id),
    ]


class AggregateCache:
    """Redis-backed cache for aggregation results."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis],
        ttl_seconds: Optional[Dict[str, int]] = None,
        clock: Callable[[], float] = time.time
    ):
        self.redis_client = redis_client
        self.clock = clock
        self.ttl_seconds = dict(AggregateKind.DEFAULT_TTL_SECONDS)
        if ttl_seconds:
            self.ttl_seconds.update(ttl_seconds)

        if not self.redis_client:
            logger.warning("AggregateCache initialized without a Redis client. Every lookup will miss.")

    def ttl_for(self, kind: str) -> Optional[int]:
        """TTL for an aggregate kind, or None when the kind is not cacheable."""
        return self.ttl_seconds.get(kind)

    def get(self, key: CacheKey) -> Optional[Any]:
        """Return the cached value, or None on a miss, an expired entry or a cache failure."""
        if not self.redis_client:
            return None

        try:
            if key.field is not None:
                raw = self.redis_client.hget(key.name, key.field)
            else:
                raw = self.redis_client.get(key.name)
        except redis.exceptions.RedisError as e:
            logger.warning("Cache read failed, treating as miss", cache_key=key.name, field=key.field, error=str(e))
            return None

        if raw is None:
            logger.debug("Cache miss", cache_key=key.name, field=key.field)
            return None

        try:
            envelope = json.loads(raw)
            value = envelope["value"]
            expires_at = float(envelope["expires_at"])
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Discarding malformed cache entry", cache_key=key.name, field=key.field, error=str(e))
            return None

        if expires_at <= self.clock():
            logger.debug("Cache entry expired", cache_key=key.name, field=key.field)
            return None

        logger.debug("Cache hit", cache_key=key.name, field=key.field)
        return value

    def put(self, key: CacheKey, value: Any, ttl: Optional[int]) -> bool:
        """
        Store a value for ttl seconds. Concurrent puts for one key are
        last-write-wins; each write replaces the whole serialized value.

        Returns:
            True if the value was written.
        """
        if not self.redis_client or not ttl or ttl <= 0:
            return False

        envelope = json.dumps({"value": value, "expires_at": self.clock() + ttl}, sort_keys=True)
        try:
            if key.field is not None:
                pipe = self.redis_client.pipeline(transaction=False)
                pipe.hset(key.name, key.field, envelope)
                # Refreshed on every write; field envelopes enforce per-visitor expiry
                pipe.expire(key.name, int(ttl))
                pipe.execute()
            else:
                self.redis_client.setex(key.name, int(ttl), envelope)
        except redis.exceptions.RedisError as e:
            logger.warning("Cache write failed, skipping", cache_key=key.name, field=key.field, error=str(e))
            return False

        logger.debug("Cached aggregate", cache_key=key.name, field=key.field, ttl=ttl)
        return True

    def invalidate(self, keys: Iterable[CacheKey]) -> int:
        """
        Remove entries immediately regardless of remaining TTL.

        Best-effort and not atomic across keys: a failure on one key is logged
        and the remaining keys are still attempted.

        Returns:
            Number of keys for which the delete was issued successfully.
        """
        if not self.redis_client:
            return 0

        removed = 0
        for key in keys:
            try:
                if key.field is not None:
                    self.redis_client.hdel(key.name, key.field)
                else:
                    self.redis_client.delete(key.name)
                removed += 1
            except redis.exceptions.RedisError as e:
                logger.warning("Cache invalidation failed", cache_key=key.name, field=key.field, error=str(e))

        logger.debug("Cache invalidation issued", requested=removed)
        return removed
