#!/usr/bin/env python3
"""
Analytics Domain Types

Plain value types shared by the event store, the aggregation engine and the
analytics service. None of them know about Flask, Redis or SQLAlchemy.
"""

from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

from ..utils.error_utils import ValidationError


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to naive UTC, the representation used in storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Event(NamedTuple):
    """A single recorded analytics event. Immutable once stored."""
    event_id: Optional[int]
    application_id: int
    event_name: str
    url: str
    timestamp: datetime
    referrer: Optional[str] = None
    device: Optional[str] = None
    visitor_identifier: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "application_id": self.application_id,
            "event_name": self.event_name,
            "url": self.url,
            "referrer": self.referrer,
            "device": self.device,
            "visitor_identifier": self.visitor_identifier,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata or {}),
        }


class ApplicationIdentity(NamedTuple):
    """What the identity provider knows about the application behind a key."""
    application_id: int
    name: str
    active: bool
    expires_at: Optional[datetime]

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())


class EventFilter:
    """
    Typed filter passed structurally to the event store.

    Validated once at construction: the time window bounds are normalized to
    naive UTC and must not be inverted. Both bounds are inclusive.
    """

    __slots__ = ("event_name", "visitor_identifier", "start", "end")

    def __init__(
        self,
        event_name: Optional[str] = None,
        visitor_identifier: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ):
        start = to_naive_utc(start)
        end = to_naive_utc(end)
        if start is not None and end is not None and start > end:
            raise ValidationError("Invalid date range: start_date cannot be after end_date.", field="start_date")
        self.event_name = event_name
        self.visitor_identifier = visitor_identifier
        self.start = start
        self.end = end

    def matches(self, event: Event) -> bool:
        """In-memory equivalent of the store's WHERE clause."""
        if self.event_name is not None and event.event_name != self.event_name:
            return False
        if self.visitor_identifier is not None and event.visitor_identifier != self.visitor_identifier:
            return False
        if self.start is not None and event.timestamp < self.start:
            return False
        if self.end is not None and event.timestamp > self.end:
            return False
        return True

    def __eq__(self, other):
        if not isinstance(other, EventFilter):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self.__slots__)

    def __repr__(self):
        fields = ", ".join(f"{name}={getattr(self, name)!r}" for name in self.__slots__)
        return f"EventFilter({fields})"
