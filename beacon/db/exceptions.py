#!/usr/bin/env python3
"""
Database Exceptions

Defines custom exceptions for event store and identity provider operations,
integrated with APIError for proper HTTP responses.
"""

from ..utils.error_utils import DependencyUnavailableError, NotFoundError

class EventStoreUnavailableError(DependencyUnavailableError):
    """The SQL database could not be reached, timed out or failed the query (503)."""
    def __init__(self, message: str = "Event store unavailable", details: any = None):
        super().__init__(message, details=details)

class ApplicationNotFoundError(NotFoundError):
    """Referenced application does not exist (404)."""
    def __init__(self, message: str = "Application not found", details: any = None):
        super().__init__(message, details=details)
