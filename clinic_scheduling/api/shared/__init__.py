"""
Shared utilities for Clinic Scheduling API.

Request validators and the engine runner used by every endpoint.
"""

from .engine import (
    CalendarServiceError,
    SlotConflictError,
    run_engine,
    serialize,
)
from .validators import (
    optional_int,
    parse_json_object,
    parse_utc_datetime,
    validate_docname,
)

__all__ = [
    # Engine
    "CalendarServiceError",
    "SlotConflictError",
    "run_engine",
    "serialize",
    # Validators
    "optional_int",
    "parse_json_object",
    "parse_utc_datetime",
    "validate_docname",
]
