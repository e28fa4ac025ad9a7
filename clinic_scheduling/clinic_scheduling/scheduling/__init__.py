"""
Scheduling Services Module

This module provides core business logic for medical appointment scheduling:
- Timezone normalization (timezones.py)
- Availability checking in three tiers (availability.py)
- Overlap detection (overlap.py)
- Slot generation for UI (slots.py)
- Calendar reconciliation and sync (reconciliation.py)
- Appointment lifecycle (lifecycle.py)
- Facade over all of the above (service.py)
- Scheduled tasks (tasks.py)

Everything except tasks.py is framework-free and receives its store,
directories, calendar gateway and notifier by injection (ports.py).
"""
