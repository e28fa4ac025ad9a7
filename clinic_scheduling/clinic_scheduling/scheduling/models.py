"""
Scheduling Models

Value objects exchanged between the scheduling components:
- Appointment and its status machine
- WorkingHours (weekly template of a doctor)
- DoctorProfile, Patient and CalendarCredential (collaborators)
- ExternalCalendarEvent (strict DTO at the calendar boundary)
- Slot, SyncResult, AppointmentPage, LifecycleResult (results)
"""

import uuid
from datetime import datetime, time, timedelta
from enum import Enum
from typing import List, Optional

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .settings import DEFAULT_TIMEZONE


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def new_appointment_id() -> str:
	return uuid.uuid4().hex


def utc_now() -> datetime:
	return datetime.now(pytz.UTC).replace(microsecond=0)


def ensure_utc(value: datetime) -> datetime:
	"""Rechaza datetimes naive y convierte los aware a UTC."""
	if value.tzinfo is None or value.utcoffset() is None:
		raise ValueError("datetime must be timezone-aware")
	return value.astimezone(pytz.UTC)


class AppointmentStatus(str, Enum):
	SCHEDULED = "scheduled"
	CONFIRMED = "confirmed"
	CANCELLED = "cancelled"
	COMPLETED = "completed"
	NO_SHOW = "no_show"


class AppointmentType(str, Enum):
	PRESENTIAL = "presential"
	REMOTE = "remote"
	HOME = "home"


TERMINAL_STATUSES = frozenset({
	AppointmentStatus.CANCELLED,
	AppointmentStatus.COMPLETED,
	AppointmentStatus.NO_SHOW,
})

ALLOWED_TRANSITIONS = {
	AppointmentStatus.SCHEDULED: frozenset({
		AppointmentStatus.CONFIRMED,
		AppointmentStatus.CANCELLED,
		AppointmentStatus.NO_SHOW,
	}),
	AppointmentStatus.CONFIRMED: frozenset({
		AppointmentStatus.COMPLETED,
		AppointmentStatus.CANCELLED,
		AppointmentStatus.NO_SHOW,
	}),
}

# Estados que ocupan el horario del doctor
BLOCKING_STATUSES = frozenset(s for s in AppointmentStatus if s != AppointmentStatus.CANCELLED)


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
	return target in ALLOWED_TRANSITIONS.get(AppointmentStatus(current), frozenset())


class ConsultationDetails(BaseModel):
	diagnosis: Optional[str] = None
	prescription: Optional[str] = None
	next_appointment: Optional[datetime] = None
	notes: Optional[str] = None


class Appointment(BaseModel):
	model_config = ConfigDict(validate_assignment=True)

	id: str
	doctor_id: str
	# Solo las citas creadas por sync desde el calendario externo pueden no tener paciente
	patient_id: Optional[str] = None
	date_time_utc: datetime
	duration_minutes: int = Field(gt=0)
	timezone_at_booking: str = DEFAULT_TIMEZONE
	type: AppointmentType = AppointmentType.PRESENTIAL
	status: AppointmentStatus = AppointmentStatus.SCHEDULED
	title: Optional[str] = None
	notes: Optional[str] = None
	external_event_id: Optional[str] = None
	external_calendar_id: Optional[str] = None
	cancellation_reason: Optional[str] = None
	cancellation_penalty: Optional[float] = Field(default=None, ge=0, le=100)
	consultation: Optional[ConsultationDetails] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None

	@field_validator("date_time_utc")
	@classmethod
	def _utc(cls, value: datetime) -> datetime:
		return ensure_utc(value)

	@property
	def end_utc(self) -> datetime:
		return self.date_time_utc + timedelta(minutes=self.duration_minutes)

	@property
	def is_terminal(self) -> bool:
		return self.status in TERMINAL_STATUSES

	def overlaps(self, start: datetime, end: datetime) -> bool:
		return self.date_time_utc < end and self.end_utc > start


class WorkingDay(BaseModel):
	start: time = time(9, 0)
	end: time = time(18, 0)
	available: bool = True

	@model_validator(mode="after")
	def _start_before_end(self) -> "WorkingDay":
		if self.available and self.start >= self.end:
			raise ValueError(f"working day start {self.start} must be before end {self.end}")
		return self


class WorkingHours(BaseModel):
	"""Plantilla semanal, una entrada por día (monday..sunday)."""

	monday: WorkingDay = Field(default_factory=WorkingDay)
	tuesday: WorkingDay = Field(default_factory=WorkingDay)
	wednesday: WorkingDay = Field(default_factory=WorkingDay)
	thursday: WorkingDay = Field(default_factory=WorkingDay)
	friday: WorkingDay = Field(default_factory=WorkingDay)
	saturday: WorkingDay = Field(default_factory=lambda: WorkingDay(available=False))
	sunday: WorkingDay = Field(default_factory=lambda: WorkingDay(available=False))

	def for_weekday(self, weekday: str) -> WorkingDay:
		return getattr(self, weekday.lower())

	def for_date(self, local_date) -> WorkingDay:
		return self.for_weekday(WEEKDAYS[local_date.weekday()])


class CancellationPolicy(BaseModel):
	hours_notice: float = Field(default=24, ge=0)
	penalty_percentage: float = Field(default=0, ge=0, le=100)


class CalendarCredential(BaseModel):
	"""Credencial delegada válida; su obtención y refresco ocurren fuera del motor."""

	model_config = ConfigDict(frozen=True)

	provider: str = "google_calendar"
	calendar_id: str = Field(min_length=1)
	access_token: str = Field(min_length=1, repr=False)


class DoctorProfile(BaseModel):
	id: str
	name: str = ""
	timezone: str = DEFAULT_TIMEZONE
	working_hours: WorkingHours = Field(default_factory=WorkingHours)
	default_duration_minutes: int = Field(default=60, gt=0)
	cancellation_policy: CancellationPolicy = Field(default_factory=CancellationPolicy)
	calendar: Optional[CalendarCredential] = None
	last_synced_at: Optional[datetime] = None
	next_sync_at: Optional[datetime] = None


class Patient(BaseModel):
	id: str
	doctor_id: str
	name: str
	phone: Optional[str] = None
	email: Optional[str] = None
	notifications_enabled: bool = True


class EventStatus(str, Enum):
	CONFIRMED = "confirmed"
	TENTATIVE = "tentative"
	CANCELLED = "cancelled"


class EventTransparency(str, Enum):
	OPAQUE = "opaque"
	TRANSPARENT = "transparent"


class Attendee(BaseModel):
	model_config = ConfigDict(extra="forbid")

	email: str
	display_name: Optional[str] = None


class ExternalCalendarEvent(BaseModel):
	"""
	Evento del calendario externo ya normalizado.

	start/end siempre en UTC. Un payload que no cumpla estas reglas
	se rechaza en la ingesta (pydantic.ValidationError).
	"""

	model_config = ConfigDict(extra="forbid", frozen=True)

	id: str = Field(min_length=1)
	title: str = "Sin título"
	description: Optional[str] = None
	start: datetime
	end: datetime
	start_timezone: Optional[str] = None
	end_timezone: Optional[str] = None
	attendees: List[Attendee] = Field(default_factory=list)
	status: EventStatus = EventStatus.CONFIRMED
	transparency: EventTransparency = EventTransparency.OPAQUE

	@field_validator("start", "end")
	@classmethod
	def _utc(cls, value: datetime) -> datetime:
		return ensure_utc(value)

	@model_validator(mode="after")
	def _end_after_start(self) -> "ExternalCalendarEvent":
		if self.end <= self.start:
			raise ValueError(f"event {self.id} ends before it starts")
		return self

	@property
	def duration_minutes(self) -> int:
		return int((self.end - self.start).total_seconds() // 60)

	@property
	def blocks_time(self) -> bool:
		return (
			self.transparency != EventTransparency.TRANSPARENT
			and self.status != EventStatus.CANCELLED
		)

	def overlaps(self, start: datetime, end: datetime) -> bool:
		return self.start < end and self.end > start


class Slot(BaseModel):
	model_config = ConfigDict(frozen=True)

	start: datetime
	end: datetime
	available: bool


class SyncResult(BaseModel):
	total_events: int = 0
	new_appointments: int = 0
	updated_appointments: int = 0
	errors: List[str] = Field(default_factory=list)


class AppointmentPage(BaseModel):
	appointments: List[Appointment]
	total: int
	page: int
	limit: int
	total_pages: int
	# "calendar" si la lista viene del calendario externo, "store" si vino del fallback local
	source: str


class AvailabilityReport(BaseModel):
	available: bool
	tier: Optional[str] = None
	reason: Optional[str] = None
	external_checked: bool = False
	external_skipped: bool = False
	external_error: Optional[str] = None
	conflicting_appointments: List[str] = Field(default_factory=list)
	conflicting_events: List[str] = Field(default_factory=list)


class SideEffectOutcome(BaseModel):
	name: str
	ok: bool = True
	skipped: bool = False
	error: Optional[str] = None


class LifecycleResult(BaseModel):
	appointment: Appointment
	side_effects: List[SideEffectOutcome] = Field(default_factory=list)

	@property
	def side_effects_ok(self) -> bool:
		return all(effect.ok for effect in self.side_effects)


class AppointmentDetails(BaseModel):
	appointment: Appointment
	patient_name: Optional[str] = None
	patient_phone: Optional[str] = None
	patient_email: Optional[str] = None
	doctor_name: Optional[str] = None
	local_date_time: datetime
