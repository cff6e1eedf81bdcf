#!/usr/bin/env python3
"""
API Request Helper Utilities
"""

import structlog
from datetime import datetime
from typing import Any, Optional, Tuple
from werkzeug.datastructures import MultiDict # For type hinting request.args

from pydantic import ValidationError as PydanticValidationError

from ...analytics.models import to_naive_utc
from ...utils.error_utils import ValidationError

logger = structlog.get_logger(__name__)

def parse_timestamp(value: Optional[str], field: str = "timestamp") -> Optional[datetime]:
    """
    Parse an ISO-8601 string (a trailing 'Z' is accepted) into naive UTC.

    Raises:
        ValidationError: If the string is not a valid ISO-8601 timestamp.
    """
    if value is None or value == "":
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError as e:
        logger.warning("Invalid timestamp received", field=field, value=value, error=str(e))
        raise ValidationError(
            "Invalid date format. Use ISO 8601 format (e.g., YYYY-MM-DDTHH:MM:SS or YYYY-MM-DD).",
            field=field
        )

def parse_date_range_args(args: MultiDict) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Parses 'start_date' and 'end_date' from request arguments.

    Args:
        args: The request arguments object (e.g., request.args).

    Returns:
        A tuple containing (start_date, end_date) as naive UTC datetimes or None.

    Raises:
        ValidationError: If a date is malformed or start_date is after end_date.
    """
    start_date = parse_timestamp(args.get("start_date"), field="start_date")
    end_date = parse_timestamp(args.get("end_date"), field="end_date")

    if start_date and end_date and start_date > end_date:
        logger.warning("Invalid date range: start_date is after end_date", start_date=start_date, end_date=end_date)
        raise ValidationError("Invalid date range: start_date cannot be after end_date.", field="start_date")

    return start_date, end_date

def validate_body(schema, data: Any):
    """Validate a JSON body against a pydantic model, raising ValidationError (400) on failure."""
    if data is None:
        raise ValidationError("Request body must be JSON")
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        logger.warning("Request body validation failed", schema=schema.__name__, errors=e.errors(include_url=False, include_context=False))
        raise ValidationError("Invalid request data", details=e.errors(include_url=False, include_context=False, include_input=False))
