"""
Calendar Gateways Module

Provides adapters for the doctor's external calendar:
- Base gateway interface and bounded calls (base.py)
- Factory for getting the right gateway (factory.py)
- Google Calendar implementation (google_calendar.py)
"""
