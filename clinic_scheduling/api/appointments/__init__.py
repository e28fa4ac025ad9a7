"""
Appointments API Domain

Handles availability, slots, appointment lifecycle and calendar sync.
"""

from .endpoints import (
    # Availability
    get_available_slots,
    get_doctor_availability,
    check_availability,
    validate_appointment,
    # Lifecycle
    create_appointment,
    update_appointment,
    cancel_appointment,
    confirm_appointment,
    complete_appointment,
    mark_no_show,
    # Queries
    get_appointment,
    list_appointments,
    # Calendar
    sync_calendar,
    get_calendar_events,
)

__all__ = [
    # Availability
    "get_available_slots",
    "get_doctor_availability",
    "check_availability",
    "validate_appointment",
    # Lifecycle
    "create_appointment",
    "update_appointment",
    "cancel_appointment",
    "confirm_appointment",
    "complete_appointment",
    "mark_no_show",
    # Queries
    "get_appointment",
    "list_appointments",
    # Calendar
    "sync_calendar",
    "get_calendar_events",
]
