"""
Input Validators

Parse and validate raw request values before they reach the engine.
All failures raise scheduling ValidationError.
"""

import re
from datetime import date, datetime
from typing import Any, Optional, Tuple, Union

from .exceptions import ValidationError
from .models import AppointmentStatus, AppointmentType
from .settings import SchedulingSettings


DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_RE = re.compile(
	r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$"
)


def validate_identifier(value: Any, field_name: str = "id") -> str:
	if value is None or not str(value).strip():
		raise ValidationError(f"{field_name} is required", field=field_name)

	value = str(value).strip()
	if len(value) > 140:
		raise ValidationError(f"{field_name} is too long", field=field_name)
	return value


def validate_duration(duration: Any, settings: SchedulingSettings) -> int:
	"""
	Valida la duración de una cita en minutos.

	Args:
		duration: int o string numérico
		settings: para el máximo permitido (max_duration_minutes)

	Returns:
		int: duración validada

	Raises:
		ValidationError: si no es entero, es <= 0 o supera el máximo
	"""
	if isinstance(duration, bool):
		raise ValidationError("duration must be an integer number of minutes", field="duration")

	try:
		minutes = int(str(duration).strip())
	except (TypeError, ValueError):
		raise ValidationError("duration must be an integer number of minutes", field="duration")

	if minutes <= 0:
		raise ValidationError("duration must be positive", field="duration")
	if minutes > settings.max_duration_minutes:
		raise ValidationError(
			f"duration must not exceed {settings.max_duration_minutes} minutes",
			field="duration",
		)
	return minutes


def validate_appointment_type(value: Any) -> AppointmentType:
	try:
		return AppointmentType(str(value).strip().lower())
	except ValueError:
		allowed = ", ".join(t.value for t in AppointmentType)
		raise ValidationError(f"Invalid appointment type {value!r}. Use one of: {allowed}", field="type")


def validate_status(value: Any) -> AppointmentStatus:
	try:
		return AppointmentStatus(str(value).strip().lower())
	except ValueError:
		allowed = ", ".join(s.value for s in AppointmentStatus)
		raise ValidationError(f"Invalid status {value!r}. Use one of: {allowed}", field="status")


def parse_date(value: Union[date, str], field_name: str = "date") -> date:
	if isinstance(value, datetime):
		return value.date()
	if isinstance(value, date):
		return value
	if not value:
		raise ValidationError(f"{field_name} is required", field=field_name)

	value = str(value).strip()
	if not DATE_RE.match(value):
		raise ValidationError(f"Invalid {field_name} format. Use YYYY-MM-DD", field=field_name)

	try:
		return date.fromisoformat(value)
	except ValueError:
		raise ValidationError(f"Invalid {field_name}: {value}", field=field_name)


def parse_datetime(value: Union[datetime, str], field_name: str = "date_time") -> datetime:
	"""
	Acepta "YYYY-MM-DD HH:MM[:SS]" (hora local, naive) o ISO 8601 con
	offset/Z (aware).
	"""
	if isinstance(value, datetime):
		return value
	if not value:
		raise ValidationError(f"{field_name} is required", field=field_name)

	value = str(value).strip()
	if not DATETIME_RE.match(value):
		raise ValidationError(
			f"Invalid {field_name} format. Use YYYY-MM-DD HH:MM:SS or ISO 8601",
			field=field_name,
		)

	if value.endswith("Z"):
		value = f"{value[:-1]}+00:00"

	try:
		return datetime.fromisoformat(value)
	except ValueError:
		raise ValidationError(f"Invalid {field_name}: {value}", field=field_name)


def validate_date_range(
	start_date: date,
	end_date: date,
	settings: SchedulingSettings,
) -> Tuple[date, date]:
	if start_date > end_date:
		raise ValidationError("start_date must be on or before end_date", field="start_date")

	if (end_date - start_date).days + 1 > settings.max_range_days:
		raise ValidationError(
			f"date range must not exceed {settings.max_range_days} days",
			field="end_date",
		)
	return start_date, end_date


def validate_pagination(
	page: Optional[Any],
	limit: Optional[Any],
	settings: SchedulingSettings,
) -> Tuple[int, int]:
	try:
		page = int(page) if page is not None else 1
		limit = int(limit) if limit is not None else settings.default_page_size
	except (TypeError, ValueError):
		raise ValidationError("page and limit must be integers", field="page")

	if page < 1:
		raise ValidationError("page must be >= 1", field="page")
	if limit < 1 or limit > settings.max_page_size:
		raise ValidationError(f"limit must be between 1 and {settings.max_page_size}", field="limit")
	return page, limit
