"""
Calendar Reconciliation Service

Keeps the local appointment store consistent with the doctor's external
calendar, which is the source of truth:
- list_authoritative: read appointments from the calendar, falling back to the store
- sync: pull calendar events into the store (create shells, apply changes)
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Union

from ..calendar_gateways.base import CalendarGateway, call_gateway
from .exceptions import ExternalServiceError, NotFoundError, SchedulingError, ValidationError
from .models import (
	Appointment,
	AppointmentPage,
	AppointmentStatus,
	DoctorProfile,
	EventStatus,
	ExternalCalendarEvent,
	SyncResult,
	ensure_utc,
	new_appointment_id,
	utc_now,
)
from .ports import AppointmentStore, DoctorDirectory
from .settings import SchedulingSettings
from .timezones import TimezoneNormalizer
from .validators import validate_duration, validate_pagination, validate_status


logger = logging.getLogger(__name__)

SOURCE_CALENDAR = "calendar"
SOURCE_STORE = "store"

SYNC_CREATED = "created"
SYNC_UPDATED = "updated"


def paginate(appointments: List[Appointment], page: int, limit: int, source: str) -> AppointmentPage:
	total = len(appointments)
	offset = (page - 1) * limit
	return AppointmentPage(
		appointments=appointments[offset:offset + limit],
		total=total,
		page=page,
		limit=limit,
		total_pages=math.ceil(total / limit),
		source=source,
	)


class CalendarReconciler:
	def __init__(
		self,
		store: AppointmentStore,
		doctors: DoctorDirectory,
		gateway: Optional[CalendarGateway] = None,
		normalizer: Optional[TimezoneNormalizer] = None,
		settings: Optional[SchedulingSettings] = None,
		clock: Callable[[], datetime] = utc_now,
	):
		self.store = store
		self.doctors = doctors
		self.gateway = gateway
		self.settings = settings or SchedulingSettings()
		self.normalizer = normalizer or TimezoneNormalizer(self.settings)
		self.clock = clock

	async def _get_doctor(self, doctor_id: str) -> DoctorProfile:
		doctor = await self.doctors.get_doctor(doctor_id)
		if not doctor:
			raise NotFoundError(f"Doctor {doctor_id} not found", doctor_id=doctor_id)
		return doctor

	def _window(
		self,
		start: Optional[datetime],
		end: Optional[datetime],
		lookback_days: int,
		lookahead_days: int,
	):
		# Un solo límite: el otro se deriva de él, no de ahora
		try:
			start = ensure_utc(start) if start else None
			end = ensure_utc(end) if end else None
		except ValueError:
			raise ValidationError("window bounds must be timezone-aware", field="start_date")

		if start is None and end is None:
			now = self.clock()
			start = now - timedelta(days=lookback_days)
			end = now + timedelta(days=lookahead_days)
		elif end is None:
			end = start + timedelta(days=lookback_days + lookahead_days)
		elif start is None:
			start = end - timedelta(days=lookback_days + lookahead_days)

		if start >= end:
			raise ValidationError("start_date must be before end_date", field="start_date")
		return start, end

	async def _fetch_raw(self, doctor: DoctorProfile, start: datetime, end: datetime) -> List[dict]:
		return await call_gateway(
			self.gateway.list_events(doctor.calendar, start, end),
			self.settings.gateway_timeout_seconds,
			"list_events",
		)

	async def fetch_events(
		self,
		doctor_id: str,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
	) -> List[ExternalCalendarEvent]:
		"""Eventos normalizados del calendario del doctor; los mal formados se omiten."""
		doctor = await self._get_doctor(doctor_id)
		if not doctor.calendar or not self.gateway:
			raise ValidationError(f"Doctor {doctor_id} has no connected calendar", field="doctor_id")

		start, end = self._window(start, end, self.settings.list_lookback_days, self.settings.list_lookahead_days)

		events = []
		for payload in await self._fetch_raw(doctor, start, end):
			try:
				events.append(self.gateway.parse_event(payload, doctor.timezone))
			except ValidationError as e:
				logger.warning(f"Skipping malformed calendar event for doctor {doctor_id}: {e.message}")
		return events

	async def _linked_appointments(
		self,
		doctor: DoctorProfile,
		events: List[ExternalCalendarEvent],
		start: datetime,
		end: datetime,
	) -> Dict[str, Appointment]:
		"""Citas locales enlazadas a los eventos, por external_event_id."""
		nearby = await self.store.query(
			doctor.id,
			start=start - timedelta(minutes=self.settings.max_duration_minutes),
			end=end,
		)
		linked = {appt.external_event_id: appt for appt in nearby if appt.external_event_id}

		# Eventos movidos fuera de la ventana en el calendario siguen enlazados a su cita
		missing = [event.id for event in events if event.id not in linked]
		found = await asyncio.gather(*(
			self.store.find_by_external_event(doctor.id, event_id) for event_id in missing
		))
		for appt in found:
			if appt:
				linked[appt.external_event_id] = appt
		return linked

	def project(
		self,
		doctor: DoctorProfile,
		event: ExternalCalendarEvent,
		linked: Optional[Appointment] = None,
	) -> Appointment:
		"""
		Proyección con forma de Appointment de un evento externo.

		Horario, título y descripción vienen del evento; paciente, tipo,
		estado e id vienen de la cita enlazada si existe.
		"""
		fields = {
			"date_time_utc": event.start,
			"duration_minutes": max(1, event.duration_minutes),
			"title": event.title,
			"notes": event.description,
		}
		if linked:
			return linked.model_copy(update=fields)

		return Appointment(
			id=f"ext:{event.id}",
			doctor_id=doctor.id,
			timezone_at_booking=self.normalizer.resolve_zone(event.start_timezone or doctor.timezone).name,
			external_event_id=event.id,
			external_calendar_id=doctor.calendar.calendar_id if doctor.calendar else None,
			**fields,
		)

	async def list_authoritative(
		self,
		doctor_id: str,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		status: Optional[Union[str, Iterable[str]]] = None,
		patient_id: Optional[str] = None,
		page: Optional[int] = 1,
		limit: Optional[int] = None,
	) -> AppointmentPage:
		"""
		Lista citas del doctor tomando el calendario externo como verdad.

		Args:
			doctor_id: doctor
			start, end: ventana (UTC aware); por defecto list_lookback/lookahead
			status: estado o lista de estados a incluir
			patient_id: filtrar por paciente
			page, limit: paginación (page empieza en 1)

		Returns:
			AppointmentPage con source "calendar" o "store"

		Algoritmo:
			1. Pedir eventos al calendario externo en la ventana
			2. Si hay eventos: proyectar cada uno usando la cita enlazada,
			   filtrar, ordenar y paginar
			3. Si falla o no hay eventos: misma consulta contra el store
		"""
		page, limit = validate_pagination(page, limit, self.settings)
		statuses = None
		if status:
			raw = [status] if isinstance(status, str) else list(status)
			statuses = {validate_status(s) for s in raw}

		doctor = await self._get_doctor(doctor_id)
		start, end = self._window(start, end, self.settings.list_lookback_days, self.settings.list_lookahead_days)

		# 1. Calendario externo
		events: List[ExternalCalendarEvent] = []
		if doctor.calendar and self.gateway:
			try:
				for payload in await self._fetch_raw(doctor, start, end):
					try:
						event = self.gateway.parse_event(payload, doctor.timezone)
					except ValidationError as e:
						logger.warning(f"Skipping malformed calendar event for doctor {doctor_id}: {e.message}")
						continue
					if event.status != EventStatus.CANCELLED:
						events.append(event)
			except ExternalServiceError as e:
				logger.warning(f"Calendar listing failed for doctor {doctor_id}, using local store: {e.message}")
				events = []

		# 2. Proyección desde el calendario
		if events:
			linked = await self._linked_appointments(doctor, events, start, end)
			appointments = [self.project(doctor, event, linked.get(event.id)) for event in events]
			appointments = [
				appt for appt in appointments
				if (statuses is None or appt.status in statuses)
				and (patient_id is None or appt.patient_id == patient_id)
			]
			appointments.sort(key=lambda appt: appt.date_time_utc)
			return paginate(appointments, page, limit, SOURCE_CALENDAR)

		# 3. Fallback al store
		appointments = await self.store.query(
			doctor.id,
			start=start,
			end=end,
			statuses=statuses,
			patient_id=patient_id,
		)
		appointments.sort(key=lambda appt: appt.date_time_utc)
		return paginate(appointments, page, limit, SOURCE_STORE)

	async def sync(self, doctor_id: str) -> SyncResult:
		"""
		Trae los eventos del calendario externo al store local.

		Returns:
			SyncResult: {total_events, new_appointments, updated_appointments, errors}

		Algoritmo:
			1. Ventana: sync_lookback_days atrás, sync_lookahead_days adelante
			2. Para cada evento:
				a. Validar el payload (mal formado -> errors)
				b. Buscar cita por (external_event_id, doctor_id)
				c. Si existe y cambió horario/título/descripción -> actualizar
				d. Si no existe -> crear cita sin paciente (status scheduled)
			3. Guardar checkpoint (last_synced_at, next_sync_at)
		"""
		doctor = await self._get_doctor(doctor_id)
		if not doctor.calendar or not self.gateway:
			raise ValidationError(f"Doctor {doctor_id} has no connected calendar", field="doctor_id")

		now = self.clock()

		# 1. Eventos de la ventana
		start, end = self._window(None, None, self.settings.sync_lookback_days, self.settings.sync_lookahead_days)
		payloads = await self._fetch_raw(doctor, start, end)

		result = SyncResult(total_events=len(payloads))

		# 2. Reconciliar evento por evento
		for payload in payloads:
			event_id = payload.get("id") if isinstance(payload, dict) else None
			try:
				event = self.gateway.parse_event(payload, doctor.timezone)
				outcome = await self._reconcile_event(doctor, event, now)
			except SchedulingError as e:
				result.errors.append(f"Event {event_id or '?'}: {e.message}")
				continue
			except Exception as e:
				logger.exception(f"Unexpected error syncing event {event_id} for doctor {doctor_id}")
				result.errors.append(f"Event {event_id or '?'}: {e}")
				continue

			if outcome == SYNC_CREATED:
				result.new_appointments += 1
			elif outcome == SYNC_UPDATED:
				result.updated_appointments += 1

		# 3. Checkpoint
		await self.doctors.save_sync_checkpoint(
			doctor.id,
			now,
			now + timedelta(minutes=self.settings.sync_interval_minutes),
		)

		logger.info(
			f"Calendar sync for doctor {doctor_id}: {result.total_events} events, "
			f"{result.new_appointments} new, {result.updated_appointments} updated, "
			f"{len(result.errors)} errors"
		)
		return result

	async def _reconcile_event(
		self,
		doctor: DoctorProfile,
		event: ExternalCalendarEvent,
		now: datetime,
	) -> Optional[str]:
		if event.status == EventStatus.CANCELLED:
			return None

		duration = validate_duration(event.duration_minutes, self.settings)
		existing = await self.store.find_by_external_event(doctor.id, event.id)

		if existing:
			# Citas cerradas localmente no se reabren desde el calendario
			if existing.is_terminal:
				return None

			changes = {}
			if existing.date_time_utc != event.start:
				changes["date_time_utc"] = event.start
			if existing.duration_minutes != duration:
				changes["duration_minutes"] = duration
			if (existing.title or "") != event.title:
				changes["title"] = event.title
			if (existing.notes or "") != (event.description or ""):
				changes["notes"] = event.description

			if not changes:
				return None

			changes["updated_at"] = now
			await self.store.update(existing.model_copy(update=changes))
			return SYNC_UPDATED

		shell = Appointment(
			id=new_appointment_id(),
			doctor_id=doctor.id,
			patient_id=None,
			date_time_utc=event.start,
			duration_minutes=duration,
			timezone_at_booking=self.normalizer.resolve_zone(event.start_timezone or doctor.timezone).name,
			status=AppointmentStatus.SCHEDULED,
			title=event.title,
			notes=event.description,
			external_event_id=event.id,
			external_calendar_id=doctor.calendar.calendar_id,
			created_at=now,
			updated_at=now,
		)
		await self.store.insert(shell)
		return SYNC_CREATED
