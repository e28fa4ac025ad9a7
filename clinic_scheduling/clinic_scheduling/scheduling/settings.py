"""
Scheduling Settings

Tunable knobs of the scheduling engine. Defaults match the production
behaviour; a Frappe site overrides them through the `clinic_scheduling`
key of site_config.json (see `load_settings`).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


DEFAULT_TIMEZONE = "America/Santiago"

SUPPORTED_TIMEZONES = [
	"America/Santiago",
	"America/New_York",
	"America/Los_Angeles",
	"Europe/Madrid",
	"Europe/London",
	"UTC",
]

FAIL_OPEN = "fail_open"
FAIL_CLOSED = "fail_closed"


class SchedulingSettings(BaseModel):
	model_config = ConfigDict(extra="forbid", frozen=True)

	default_timezone: str = DEFAULT_TIMEZONE
	supported_timezones: List[str] = Field(default_factory=lambda: list(SUPPORTED_TIMEZONES))

	slot_step_minutes: int = Field(default=30, gt=0)
	max_duration_minutes: int = Field(default=480, gt=0)

	# Qué hacer si el calendario externo falla durante la verificación
	external_tier_policy: Literal["fail_open", "fail_closed"] = FAIL_OPEN
	# Re-verificar disponibilidad al reprogramar con update
	revalidate_on_update: bool = False

	gateway_timeout_seconds: float = Field(default=10.0, gt=0)

	sync_lookback_days: int = Field(default=30, ge=0)
	sync_lookahead_days: int = Field(default=90, ge=0)
	sync_interval_minutes: int = Field(default=15, gt=0)

	list_lookback_days: int = Field(default=30, ge=0)
	list_lookahead_days: int = Field(default=90, ge=0)

	max_range_days: int = Field(default=62, gt=0)
	default_page_size: int = Field(default=20, gt=0)
	max_page_size: int = Field(default=100, gt=0)

	@field_validator("supported_timezones")
	@classmethod
	def _not_empty(cls, value: List[str]) -> List[str]:
		if not value:
			raise ValueError("supported_timezones must not be empty")
		return value

	@model_validator(mode="after")
	def _default_is_supported(self) -> "SchedulingSettings":
		if self.default_timezone not in self.supported_timezones:
			raise ValueError(
				f"default_timezone {self.default_timezone!r} is not in supported_timezones"
			)
		return self

	@property
	def fail_open(self) -> bool:
		return self.external_tier_policy == FAIL_OPEN


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> SchedulingSettings:
	"""
	Construye SchedulingSettings a partir de un dict de overrides.

	Args:
		overrides: valores de site_config (puede ser None)

	Returns:
		SchedulingSettings validado
	"""
	return SchedulingSettings(**(overrides or {}))
