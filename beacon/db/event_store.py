#!/usr/bin/env python3
"""
Event Store

Append-only event log backed by SQLAlchemy. Queries are built structurally
from an EventFilter and are always scoped to exactly one application.
"""

from typing import List

import structlog
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..analytics.models import Event, EventFilter
from .db_utils import handle_store_errors, session_scope
from .models import EventRecord

logger = structlog.get_logger(__name__)


def _to_event(record: EventRecord) -> Event:
    return Event(
        event_id=record.id,
        application_id=record.application_id,
        event_name=record.event_name,
        url=record.url,
        timestamp=record.timestamp,
        referrer=record.referrer,
        device=record.device,
        visitor_identifier=record.visitor_identifier,
        metadata=dict(record.event_metadata or {}),
    )


class SqlEventStore:
    """Event store over the `events` table."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @handle_store_errors
    def append(self, event: Event) -> int:
        """
        Persist one event and return its generated id.

        The row is committed before this returns.

        Raises:
            ApplicationNotFoundError: If event.application_id does not exist.
            EventStoreUnavailableError: If the database fails or times out.
        """
        with session_scope(self.session_factory) as session:
            record = EventRecord(
                application_id=event.application_id,
                event_name=event.event_name,
                url=event.url,
                referrer=event.referrer,
                device=event.device,
                visitor_identifier=event.visitor_identifier,
                timestamp=event.timestamp,
                event_metadata=dict(event.metadata) if event.metadata else None,
            )
            session.add(record)
            session.commit()
            logger.debug("Event appended", event_id=record.id, application_id=event.application_id,
                         event_name=event.event_name)
            return record.id

    @handle_store_errors
    def query(self, application_id: int, event_filter: EventFilter) -> List[Event]:
        """
        Events of one application matching the filter, oldest first.

        Raises:
            EventStoreUnavailableError: If the database fails or times out.
        """
        stmt = select(EventRecord).where(EventRecord.application_id == application_id)
        if event_filter.event_name is not None:
            stmt = stmt.where(EventRecord.event_name == event_filter.event_name)
        if event_filter.visitor_identifier is not None:
            stmt = stmt.where(EventRecord.visitor_identifier == event_filter.visitor_identifier)
        if event_filter.start is not None:
            stmt = stmt.where(EventRecord.timestamp >= event_filter.start)
        if event_filter.end is not None:
            stmt = stmt.where(EventRecord.timestamp <= event_filter.end)
        stmt = stmt.order_by(EventRecord.timestamp, EventRecord.id)

        with session_scope(self.session_factory) as session:
            events = [_to_event(record) for record in session.scalars(stmt)]

        logger.debug("Event store query", application_id=application_id, filter=repr(event_filter),
                     returned=len(events))
        return events
