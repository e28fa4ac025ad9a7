"""
Availability Service

Decides whether a doctor can take an appointment at a given instant,
checking three tiers in order and stopping at the first rejection:
- Working hours (weekly template in the doctor's timezone)
- Local appointment store (non-cancelled overlapping appointments)
- External calendar (busy events), subject to the configured failure policy
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from ..calendar_gateways.base import CalendarGateway, call_gateway
from .exceptions import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from .models import WEEKDAYS, AvailabilityReport, DoctorProfile, ensure_utc
from .overlap import check_overlap
from .ports import AppointmentStore, DoctorDirectory
from .settings import SchedulingSettings
from .timezones import TimezoneNormalizer
from .validators import validate_duration


logger = logging.getLogger(__name__)

TIER_WORKING_HOURS = "working_hours"
TIER_LOCAL_STORE = "local_store"
TIER_EXTERNAL_CALENDAR = "external_calendar"


class AvailabilityChecker:
	def __init__(
		self,
		store: AppointmentStore,
		doctors: DoctorDirectory,
		gateway: Optional[CalendarGateway] = None,
		normalizer: Optional[TimezoneNormalizer] = None,
		settings: Optional[SchedulingSettings] = None,
	):
		self.store = store
		self.doctors = doctors
		self.gateway = gateway
		self.settings = settings or SchedulingSettings()
		self.normalizer = normalizer or TimezoneNormalizer(self.settings)

	async def get_doctor(self, doctor_id: str) -> DoctorProfile:
		doctor = await self.doctors.get_doctor(doctor_id)
		if not doctor:
			raise NotFoundError(f"Doctor {doctor_id} not found", doctor_id=doctor_id)
		return doctor

	def working_window(
		self,
		doctor: DoctorProfile,
		local_date: date,
	) -> Optional[Tuple[datetime, datetime]]:
		"""
		Ventana laboral [inicio, fin) del día local, como instantes UTC.

		Returns:
			tuple(start_utc, end_utc) o None si el doctor no atiende ese día
		"""
		day = doctor.working_hours.for_date(local_date)
		if not day.available:
			return None

		start = self.normalizer.to_utc(datetime.combine(local_date, day.start), doctor.timezone)
		end = self.normalizer.to_utc(datetime.combine(local_date, day.end), doctor.timezone)
		return start, end

	def check_working_hours(
		self,
		doctor: DoctorProfile,
		start: datetime,
		end: datetime,
	) -> Optional[str]:
		"""Devuelve el motivo de rechazo, o None si [start, end) cae en horario laboral."""
		local_start = self.normalizer.to_zone(start, doctor.timezone)
		weekday = WEEKDAYS[local_start.weekday()]

		window = self.working_window(doctor, local_start.date())
		if window is None:
			return f"Doctor does not work on {weekday}"

		work_start, work_end = window
		if start < work_start or end > work_end:
			day = doctor.working_hours.for_weekday(weekday)
			return (
				f"Outside working hours ({weekday} "
				f"{day.start.strftime('%H:%M')}-{day.end.strftime('%H:%M')} {doctor.timezone})"
			)
		return None

	async def check_external(
		self,
		doctor: DoctorProfile,
		start: datetime,
		end: datetime,
		exclude_event_id: Optional[str] = None,
	) -> List[str]:
		"""
		Ids de eventos externos ocupados que se solapan con [start, end).

		Raises:
			ExternalServiceError: si el calendario falla o no responde a tiempo
		"""
		events = await call_gateway(
			self.gateway.free_busy(doctor.calendar, start, end, default_zone=doctor.timezone),
			self.settings.gateway_timeout_seconds,
			"free_busy",
		)
		return [
			event.id for event in events
			if event.id != exclude_event_id
			and event.blocks_time
			and event.overlaps(start, end)
		]

	async def evaluate(
		self,
		doctor_id: str,
		candidate_utc: datetime,
		duration: int,
		exclude_appointment_id: Optional[str] = None,
		exclude_event_id: Optional[str] = None,
		doctor: Optional[DoctorProfile] = None,
	) -> AvailabilityReport:
		"""
		Evalúa la disponibilidad de un slot y reporta qué tier decidió.

		Args:
			doctor_id: doctor dueño de la agenda
			candidate_utc: inicio del slot (aware)
			duration: minutos
			exclude_appointment_id: cita propia a ignorar (reprogramaciones)
			exclude_event_id: evento espejo propio a ignorar
			doctor: perfil ya cargado (evita otra consulta)

		Returns:
			AvailabilityReport

		Algoritmo:
			1. Horario laboral en la zona del doctor
			2. Citas no canceladas en el store local
			3. Calendario externo (si hay credencial); falla según external_tier_policy
		"""
		duration = validate_duration(duration, self.settings)
		try:
			start = ensure_utc(candidate_utc)
		except ValueError:
			raise ValidationError("candidate instant must be timezone-aware", field="date_time")
		end = start + timedelta(minutes=duration)

		if doctor is None:
			doctor = await self.get_doctor(doctor_id)

		# 1. Horario laboral
		reason = self.check_working_hours(doctor, start, end)
		if reason:
			return AvailabilityReport(available=False, tier=TIER_WORKING_HOURS, reason=reason)

		# 2. Store local
		overlap = await check_overlap(
			self.store,
			doctor.id,
			start,
			end,
			self.settings.max_duration_minutes,
			exclude_appointment_id=exclude_appointment_id,
		)
		if overlap["has_overlap"]:
			return AvailabilityReport(
				available=False,
				tier=TIER_LOCAL_STORE,
				reason="Slot overlaps an existing appointment",
				conflicting_appointments=overlap["overlapping_appointments"],
			)

		# 3. Calendario externo
		if not doctor.calendar or not self.gateway:
			return AvailabilityReport(available=True, external_skipped=True)

		try:
			busy = await self.check_external(doctor, start, end, exclude_event_id)
		except ExternalServiceError as e:
			if self.settings.fail_open:
				logger.warning(
					f"External calendar check failed for doctor {doctor.id}, allowing booking: {e.message}"
				)
				return AvailabilityReport(
					available=True,
					external_checked=True,
					external_error=e.message,
				)
			return AvailabilityReport(
				available=False,
				tier=TIER_EXTERNAL_CALENDAR,
				reason="External calendar unavailable",
				external_checked=True,
				external_error=e.message,
			)

		if busy:
			return AvailabilityReport(
				available=False,
				tier=TIER_EXTERNAL_CALENDAR,
				reason="Slot overlaps a busy event in the doctor's calendar",
				external_checked=True,
				conflicting_events=busy,
			)

		return AvailabilityReport(available=True, external_checked=True)

	async def is_available(self, doctor_id: str, candidate_utc: datetime, duration: int) -> bool:
		report = await self.evaluate(doctor_id, candidate_utc, duration)
		return report.available

	async def ensure_available(self, doctor_id: str, candidate_utc: datetime, duration: int, **kwargs) -> AvailabilityReport:
		"""Como evaluate, pero lanza ConflictError si el slot no está disponible."""
		report = await self.evaluate(doctor_id, candidate_utc, duration, **kwargs)
		if not report.available:
			raise ConflictError(
				report.reason or "Slot not available",
				tier=report.tier,
				conflicting_appointments=report.conflicting_appointments,
				conflicting_events=report.conflicting_events,
			)
		return report
