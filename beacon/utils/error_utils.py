#!/usr/bin/env python3
"""
Error Handling Utilities

This module provides standardized error handling and custom exception classes.
Every error the API reports to a caller is an APIError subclass carrying its
HTTP status code.
"""

import traceback
import structlog
from typing import Dict, Any, Optional, Tuple

# Initialize logger
logger = structlog.get_logger(__name__)

class APIError(Exception):
    """Base class for API-related errors."""

    def __init__(self, message: str, status_code: int = 500, details: Any = None):
        """
        Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        error_dict = {
            "error": self.message,
            "status_code": self.status_code
        }

        if self.details:
            error_dict["details"] = self.details

        return error_dict

class ValidationError(APIError):
    """Missing or malformed caller input (400). Never retried."""

    def __init__(self, message: str, field: Optional[str] = None, details: Any = None):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Name of the field that failed validation
            details: Additional error details
        """
        super().__init__(message, status_code=400, details=details)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation error to dictionary representation."""
        error_dict = super().to_dict()

        if self.field:
            error_dict["field"] = self.field

        return error_dict

class UnauthorizedError(APIError):
    """No credential was presented, or the credential is not recognized (401)."""
    def __init__(self, message: str = "Authentication required", details: Any = None):
        super().__init__(message, status_code=401, details=details)

class ForbiddenError(APIError):
    """Credential recognized but revoked, expired or not allowed here (403)."""
    def __init__(self, message: str = "Access forbidden", details: Any = None):
        super().__init__(message, status_code=403, details=details)

class NotFoundError(APIError):
    """Error when a requested resource is not found."""
    def __init__(self, message: str = "Resource not found", details: Any = None):
        super().__init__(message, status_code=404, details=details)

class DependencyUnavailableError(APIError):
    """The event store or cache could not be reached or timed out (503)."""
    def __init__(self, message: str = "A backing service is unavailable", details: Any = None):
        super().__init__(message, status_code=503, details=details)

def format_error_response(error: Exception, include_traceback: bool = False) -> Tuple[Dict[str, Any], int]:
    """
    Format a standardized error response.

    Args:
        error: The exception to format
        include_traceback: Whether to include the traceback in the response

    Returns:
        Tuple of (error_dict, status_code)
    """
    if isinstance(error, APIError):
        return error.to_dict(), error.status_code

    # Generic error
    error_dict = {
        "error": str(error),
        "status_code": 500
    }

    if include_traceback:
        error_dict["traceback"] = traceback.format_exc()

    return error_dict, 500
