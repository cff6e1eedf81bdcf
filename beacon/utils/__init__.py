"""
Utilities Package

This package provides common utilities shared across the API:
- Error handling
- Logging utilities
- API key handling
- Rate limiting
"""

from .error_utils import (
    APIError,
    ValidationError,
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    DependencyUnavailableError,
    format_error_response,
)
from .log_utils import initialize_logging, setup_request_logging, log_request, log_response

__all__ = [
    'APIError',
    'ValidationError',
    'UnauthorizedError',
    'ForbiddenError',
    'NotFoundError',
    'DependencyUnavailableError',
    'format_error_response',
    'initialize_logging',
    'setup_request_logging',
    'log_request',
    'log_response'
]
