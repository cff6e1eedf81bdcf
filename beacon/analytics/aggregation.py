#!/usr/bin/env python3
"""
Aggregation Engine

Pure functions computing summary statistics over a set of events that has
already been scoped to a single application by the event store. Nothing here
performs I/O or mutates its input.

Counts are exact integers and "unique" counts are exact distinct counts over
the caller-supplied visitor identifier. Events without an identifier do not
count as visitors.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .models import Event
from ..utils.error_utils import ValidationError

UNKNOWN_BUCKET = "unknown"
DEFAULT_INTERVAL = "day"
INTERVALS = ("hour", "day", "week", "month")
MAX_TIME_SERIES_BUCKETS = 100

# Dimension name -> how to read it from an event
BREAKDOWN_DIMENSIONS = {
    "device": lambda event: event.device,
    "browser": lambda event: (event.metadata or {}).get("browser"),
    "url": lambda event: event.url,
    "referrer": lambda event: event.referrer,
}


def _bucket_label(value: Any) -> str:
    if value is None or value == "":
        return UNKNOWN_BUCKET
    return str(value)


def _distinct_visitors(events: Iterable[Event]) -> int:
    return len({event.visitor_identifier for event in events if event.visitor_identifier is not None})


def truncate_timestamp(timestamp: datetime, interval: str) -> datetime:
    """Truncate a timestamp to the start of its interval bucket (weeks start on Monday)."""
    if interval == "hour":
        return timestamp.replace(minute=0, second=0, microsecond=0)
    day_start = timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    if interval == "day":
        return day_start
    if interval == "week":
        return day_start - timedelta(days=day_start.weekday())
    if interval == "month":
        return day_start.replace(day=1)
    raise ValidationError(
        f"Invalid interval '{interval}'. Use one of: {', '.join(INTERVALS)}.",
        field="interval"
    )


def summarize(events: Iterable[Event], event_name: Optional[str]) -> Dict[str, Any]:
    """
    Count, unique visitors and device histogram for one event name.

    Returns a zero-valued summary when nothing matches.

    Raises:
        ValidationError: If event_name is missing.
    """
    if not event_name:
        raise ValidationError("event parameter is required", field="event")

    matching = [event for event in events if event.event_name == event_name]
    attribute_histogram = Counter(_bucket_label(event.device) for event in matching)

    return {
        "event_name": event_name,
        "count": len(matching),
        "unique_visitors": _distinct_visitors(matching),
        "attribute_histogram": dict(sorted(attribute_histogram.items())),
    }


def visitor_stats(events: Iterable[Event], visitor_identifier: Optional[str]) -> Dict[str, Any]:
    """
    Per-visitor totals, event breakdown and most recently seen attributes.

    "Last seen" values are the most recent non-null value, ordered by
    timestamp and then event_id.
    """
    if not visitor_identifier:
        raise ValidationError("visitor_id is required", field="visitor_id")

    matching = [event for event in events if event.visitor_identifier == visitor_identifier]
    matching.sort(key=lambda event: (event.timestamp, event.event_id or 0))

    last_seen_device = None
    last_seen_attributes: Dict[str, Any] = {}
    for event in matching:
        if event.device is not None:
            last_seen_device = event.device
        for key, value in (event.metadata or {}).items():
            if value is not None:
                last_seen_attributes[key] = value

    per_event = Counter(event.event_name for event in matching)

    return {
        "visitor_identifier": visitor_identifier,
        "total_events": len(matching),
        "event_breakdown": dict(sorted(per_event.items())),
        "last_seen_device": last_seen_device,
        "last_seen_attributes": dict(sorted(last_seen_attributes.items())),
        "last_seen_at": matching[-1].timestamp.isoformat() if matching else None,
    }


def time_series(
    events: Iterable[Event],
    interval: Optional[str] = None,
    max_buckets: int = MAX_TIME_SERIES_BUCKETS
) -> List[Dict[str, Any]]:
    """
    Bucket events by truncated timestamp, newest bucket first.

    At most max_buckets buckets are returned; older buckets past the cap are
    dropped silently.
    """
    interval = interval or DEFAULT_INTERVAL
    if interval not in INTERVALS:
        raise ValidationError(
            f"Invalid interval '{interval}'. Use one of: {', '.join(INTERVALS)}.",
            field="interval"
        )

    buckets: Dict[datetime, List[Event]] = {}
    for event in events:
        buckets.setdefault(truncate_timestamp(event.timestamp, interval), []).append(event)

    newest_first = sorted(buckets.items(), key=lambda item: item[0], reverse=True)[:max_buckets]
    return [
        {
            "bucket_start": bucket_start.isoformat(),
            "count": len(bucket_events),
            "unique_visitors": _distinct_visitors(bucket_events),
        }
        for bucket_start, bucket_events in newest_first
    ]


def breakdown(events: Iterable[Event], dimension: str) -> List[Dict[str, Any]]:
    """Histogram of one dimension, sorted by count descending then value."""
    reader = BREAKDOWN_DIMENSIONS.get(dimension)
    if reader is None:
        raise ValidationError(
            f"Invalid breakdown dimension '{dimension}'. Use one of: {', '.join(BREAKDOWN_DIMENSIONS)}.",
            field="dimension"
        )

    counts = Counter(_bucket_label(reader(event)) for event in events)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"value": value, "count": count} for value, count in ordered]
