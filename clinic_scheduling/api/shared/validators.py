"""
Request Validators

Parse raw whitelisted-method arguments (always strings over HTTP) into the
types the scheduling engine expects. Failures raise frappe.ValidationError.
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional

import frappe
import pytz
from frappe import _

from clinic_scheduling.clinic_scheduling.scheduling.exceptions import ValidationError
from clinic_scheduling.clinic_scheduling.scheduling.validators import parse_datetime


DOCNAME_RE = re.compile(r"^[\w\-:.@ ]+$")


def validate_docname(name: Any, field_name: str = "name") -> str:
    """
    Validate a document name (ID).

    Args:
        name: Document name to validate
        field_name: Name of field for error messages

    Returns:
        str: Validated document name

    Raises:
        frappe.ValidationError: If name is missing, too long or has odd characters
    """
    if not name:
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)

    name = str(name).strip()

    if len(name) > 140:
        frappe.throw(_("{0} is too long").format(field_name), frappe.ValidationError)

    if not DOCNAME_RE.match(name):
        frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)

    return name


def optional_int(value: Any, field_name: str) -> Optional[int]:
    """Integer argument that may be omitted."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        frappe.throw(_("{0} must be an integer").format(field_name), frappe.ValidationError)


def parse_utc_datetime(value: Any, field_name: str = "date_time") -> Optional[datetime]:
    """
    Parse an instant. Strings with an offset keep it; naive strings are UTC.

    Returns:
        datetime aware in UTC, or None when omitted
    """
    if value is None or value == "":
        return None
    try:
        parsed = parse_datetime(value, field_name)
    except ValidationError as e:
        frappe.throw(_(e.message), frappe.ValidationError)

    if parsed.tzinfo is None:
        return pytz.UTC.localize(parsed)
    return parsed.astimezone(pytz.UTC)


def parse_json_object(value: Any, field_name: str) -> Dict[str, Any]:
    """Accept a dict or its JSON string form (frappe.call serializes nested args)."""
    if value is None or value == "":
        return {}
    parsed = frappe.parse_json(value) if isinstance(value, str) else value
    if not isinstance(parsed, dict):
        frappe.throw(_("{0} must be a JSON object").format(field_name), frappe.ValidationError)
    return dict(parsed)
