"""
Clinic Scheduling API

Structure:
    api/
    ├── __init__.py              # This file
    ├── appointments/            # Appointments domain
    │   ├── __init__.py          # Re-exports endpoints
    │   └── endpoints.py         # Whitelisted methods
    └── shared/                  # Shared utilities
        ├── __init__.py
        ├── engine.py            # Runs the engine, maps errors to Frappe
        └── validators.py        # Request argument parsing

Usage:
    frappe.call("clinic_scheduling.api.appointments.create_appointment", ...)
"""

from . import appointments
from . import shared

__all__ = [
    "appointments",
    "shared",
]
