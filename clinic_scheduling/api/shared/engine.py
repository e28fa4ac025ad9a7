"""
Engine Runner

Runs a scheduling-engine coroutine inside a whitelisted request and maps
engine errors to Frappe exceptions with meaningful HTTP status codes.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import frappe
from frappe import _
from pydantic import BaseModel

from clinic_scheduling.clinic_scheduling.scheduling.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from clinic_scheduling.clinic_scheduling.scheduling.service import SchedulingService
from clinic_scheduling.clinic_scheduling.stores.frappe_store import build_service


T = TypeVar("T")


class SlotConflictError(frappe.ValidationError):
    """Slot unavailable or illegal status change."""
    http_status_code = 409


class CalendarServiceError(frappe.ValidationError):
    """External calendar failed or timed out."""
    http_status_code = 502


def run_engine(operation: Callable[[SchedulingService], Awaitable[T]], action: str) -> T:
    """
    Build the Frappe-backed service, run `operation` on it and translate errors.

    Args:
        operation: coroutine function receiving the SchedulingService
        action: name used in error logs

    Returns:
        Whatever the operation returns
    """

    async def _run():
        service = build_service()
        try:
            return await operation(service)
        finally:
            await service.aclose()

    try:
        return asyncio.run(_run())
    except NotFoundError as e:
        frappe.throw(_(e.message), frappe.DoesNotExistError)
    except ConflictError as e:
        frappe.throw(_(e.message), SlotConflictError)
    except ValidationError as e:
        frappe.throw(_(e.message), frappe.ValidationError)
    except ExternalServiceError as e:
        frappe.log_error(f"Calendar error in {action}: {e.message}", "Calendar Error")
        frappe.throw(_(e.message), CalendarServiceError)
    except Exception:
        frappe.log_error(title=f"Unexpected scheduling error in {action}")
        raise


def serialize(value: Any) -> Any:
    """Pydantic models (or lists of them) to JSON-friendly dicts."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [serialize(item) for item in value]
    return value
