#!/usr/bin/env python3
"""
Analytics Service Module

Orchestrates ingestion and the cached query path: the event store is the
source of truth, the aggregate cache memoizes results in front of it.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from . import aggregation
from .cache import (AggregateCache, AggregateKind, CacheKey, event_summary_key,
                    ingestion_invalidation_keys, user_stats_key)
from .models import Event, EventFilter, to_naive_utc, utcnow
from ..utils.error_utils import ValidationError

logger = structlog.get_logger(__name__)


class AnalyticsService:
    """Service class for ingesting events and answering aggregate queries."""

    def __init__(self, event_store: Any, cache: AggregateCache,
                 max_buckets: int = aggregation.MAX_TIME_SERIES_BUCKETS):
        """
        Initialize the AnalyticsService with injected collaborators.

        Args:
            event_store: Object exposing append(event) and query(application_id, event_filter)
            cache: AggregateCache used for memoized aggregates
            max_buckets: Cap on the number of time-series buckets returned
        """
        self.event_store = event_store
        self.cache = cache
        self.max_buckets = max_buckets
        logger.info("AnalyticsService initialized", max_buckets=max_buckets)

    # --- Ingestion ---

    def ingest(
        self,
        application_id: int,
        event_name: Optional[str],
        url: Optional[str],
        referrer: Optional[str] = None,
        device: Optional[str] = None,
        visitor_identifier: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Validate and record one event, then invalidate the aggregates it affects.

        The event is committed before this returns. Invalidation is
        best-effort and never fails the call.

        Raises:
            ValidationError: If event_name or url is missing.
            DependencyUnavailableError: If the event store cannot be reached.
        """
        if not event_name or not str(event_name).strip():
            raise ValidationError("event is required", field="event")
        if not url or not str(url).strip():
            raise ValidationError("url is required", field="url")

        event = Event(
            event_id=None,
            application_id=application_id,
            event_name=event_name.strip(),
            url=url.strip(),
            timestamp=to_naive_utc(timestamp) or utcnow(),
            referrer=referrer or None,
            device=device or None,
            visitor_identifier=visitor_identifier or None,
            metadata=dict(metadata or {}),
        )
        event_id = self.event_store.append(event)
        logger.info("Event ingested", event_id=event_id, application_id=application_id,
                    event_name=event.event_name)

        removed = self.cache.invalidate(ingestion_invalidation_keys(application_id, event.event_name))
        logger.debug("Aggregates invalidated after ingest", application_id=application_id,
                     event_name=event.event_name, keys_removed=removed)
        return event_id

    # --- Query path ---

    def _cached(self, key: Optional[CacheKey], kind: str, compute):
        ttl = self.cache.ttl_for(kind) if key is not None else None
        if ttl:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        value = compute()
        if ttl:
            self.cache.put(key, value, ttl)
        return value

    def event_summary(self, application_id: int, event_name: Optional[str],
                      start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
        """Count, unique visitors and device histogram for one event in an optional window."""
        if not event_name:
            raise ValidationError("event parameter is required", field="event")
        event_filter = EventFilter(event_name=event_name, start=start, end=end)
        key = event_summary_key(application_id, event_name, event_filter.start, event_filter.end)

        def compute():
            events = self.event_store.query(application_id, event_filter)
            return aggregation.summarize(events, event_name)

        return self._cached(key, AggregateKind.EVENT_SUMMARY, compute)

    def user_stats(self, application_id: int, visitor_identifier: Optional[str]) -> Dict[str, Any]:
        """Totals and last seen attributes for one visitor of an application."""
        if not visitor_identifier:
            raise ValidationError("visitor_id is required", field="visitor_id")
        event_filter = EventFilter(visitor_identifier=visitor_identifier)
        key = user_stats_key(application_id, visitor_identifier)

        def compute():
            events = self.event_store.query(application_id, event_filter)
            return aggregation.visitor_stats(events, visitor_identifier)

        return self._cached(key, AggregateKind.USER_STATS, compute)

    def time_series(self, application_id: int, event_name: Optional[str],
                    start: Optional[datetime] = None, end: Optional[datetime] = None,
                    interval: str = aggregation.DEFAULT_INTERVAL) -> List[Dict[str, Any]]:
        """Event counts bucketed by interval, newest bucket first, capped at max_buckets."""
        if not event_name:
            raise ValidationError("event parameter is required", field="event")
        interval = interval or aggregation.DEFAULT_INTERVAL
        if interval not in aggregation.INTERVALS:
            raise ValidationError(
                f"Invalid interval '{interval}'. Use one of: {', '.join(aggregation.INTERVALS)}.",
                field="interval"
            )
        event_filter = EventFilter(event_name=event_name, start=start, end=end)

        def compute():
            events = self.event_store.query(application_id, event_filter)
            return aggregation.time_series(events, interval, self.max_buckets)

        return self._cached(None, AggregateKind.TIME_SERIES, compute)

    def breakdown(self, application_id: int, dimension: str,
                  start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Dict[str, Any]]:
        if dimension not in aggregation.BREAKDOWN_DIMENSIONS:
            raise ValidationError(
                f"Invalid breakdown dimension '{dimension}'. "
                f"Use one of: {', '.join(aggregation.BREAKDOWN_DIMENSIONS)}.",
                field="dimension"
            )
        event_filter = EventFilter(start=start, end=end)

        def compute():
            events = self.event_store.query(application_id, event_filter)
            return aggregation.breakdown(events, dimension)

        return self._cached(None, AggregateKind.ATTRIBUTE_BREAKDOWN, compute)
