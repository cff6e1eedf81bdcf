"""
Analytics Package

Domain types, the aggregation engine, the aggregate cache and the service
that ties them to the event store.
"""

from .analytics_service import AnalyticsService
from .cache import AggregateCache, AggregateKind
from .models import ApplicationIdentity, Event, EventFilter

__all__ = [
    'AnalyticsService',
    'AggregateCache',
    'AggregateKind',
    'ApplicationIdentity',
    'Event',
    'EventFilter'
]
