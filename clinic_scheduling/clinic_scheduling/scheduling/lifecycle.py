"""
Appointment Lifecycle Service

Orchestrates every state change of an appointment:

	scheduled -> confirmed -> completed
	scheduled | confirmed -> cancelled
	scheduled | confirmed -> no_show

Persisting the appointment is the primary result. Mirroring to the external
calendar and notifying the patient are best-effort side effects whose
outcomes are reported next to the appointment in LifecycleResult.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import pydantic
from pydantic import BaseModel

from ..calendar_gateways.base import CalendarEventDraft, CalendarGateway
from .availability import AvailabilityChecker
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import (
	Appointment,
	AppointmentDetails,
	AppointmentStatus,
	ConsultationDetails,
	DoctorProfile,
	LifecycleResult,
	Patient,
	SideEffectOutcome,
	can_transition,
	new_appointment_id,
	utc_now,
)
from .ports import AppointmentStore, DoctorDirectory, Notifier, NullNotifier, PatientDirectory
from .settings import SchedulingSettings
from .timezones import TimezoneNormalizer
from .validators import (
	parse_datetime,
	validate_appointment_type,
	validate_duration,
	validate_identifier,
)


logger = logging.getLogger(__name__)

EFFECT_CALENDAR_MIRROR = "calendar_mirror"
EFFECT_NOTIFICATION = "notification"


class AppointmentRequest(BaseModel):
	doctor_id: str
	patient_id: str
	# Hora local del doctor ("YYYY-MM-DD HH:MM") o instante ISO 8601 con offset
	date_time: Union[datetime, str]
	duration: Optional[Union[int, str]] = None
	type: str = "presential"
	notes: Optional[str] = None


class AppointmentChanges(BaseModel):
	date_time: Optional[Union[datetime, str]] = None
	duration: Optional[Union[int, str]] = None
	type: Optional[str] = None
	notes: Optional[str] = None
	title: Optional[str] = None


def _build(model, data: Dict[str, Any]):
	try:
		return model(**data)
	except pydantic.ValidationError as e:
		error = e.errors()[0]
		field = ".".join(str(part) for part in error["loc"])
		raise ValidationError(f"Invalid {field}: {error['msg']}", field=field)


class AppointmentLifecycle:
	def __init__(
		self,
		store: AppointmentStore,
		doctors: DoctorDirectory,
		patients: PatientDirectory,
		checker: AvailabilityChecker,
		gateway: Optional[CalendarGateway] = None,
		notifier: Optional[Notifier] = None,
		normalizer: Optional[TimezoneNormalizer] = None,
		settings: Optional[SchedulingSettings] = None,
		clock: Callable[[], datetime] = utc_now,
	):
		self.store = store
		self.doctors = doctors
		self.patients = patients
		self.checker = checker
		self.gateway = gateway
		self.notifier = notifier or NullNotifier()
		self.settings = settings or SchedulingSettings()
		self.normalizer = normalizer or TimezoneNormalizer(self.settings)
		self.clock = clock

	# ------------------------------------------------------------------
	# Lookups
	# ------------------------------------------------------------------

	async def _get_doctor(self, doctor_id: str) -> DoctorProfile:
		doctor = await self.doctors.get_doctor(doctor_id)
		if not doctor:
			raise NotFoundError(f"Doctor {doctor_id} not found", doctor_id=doctor_id)
		return doctor

	async def _get_patient(self, patient_id: str, doctor_id: str) -> Patient:
		patient = await self.patients.get_patient(patient_id, doctor_id)
		if not patient:
			raise NotFoundError(f"Patient {patient_id} not found", patient_id=patient_id)
		return patient

	async def _get_owned(self, appointment_id: str, doctor_id: str) -> Appointment:
		appointment_id = validate_identifier(appointment_id, "appointment_id")
		doctor_id = validate_identifier(doctor_id, "doctor_id")

		appointment = await self.store.get(appointment_id)
		# Una cita de otro doctor se reporta como inexistente
		if not appointment or appointment.doctor_id != doctor_id:
			raise NotFoundError(f"Appointment {appointment_id} not found", appointment_id=appointment_id)
		return appointment

	def _check_transition(self, appointment: Appointment, target: AppointmentStatus) -> None:
		if not can_transition(appointment.status, target):
			raise ConflictError(
				f"Cannot change appointment {appointment.id} from "
				f"{appointment.status.value} to {target.value}",
				tier="status",
			)

	# ------------------------------------------------------------------
	# Side effects
	# ------------------------------------------------------------------

	async def _side_effect(self, name: str, appointment_id: str, awaitable: Awaitable[Any]) -> SideEffectOutcome:
		try:
			await asyncio.wait_for(awaitable, timeout=self.settings.gateway_timeout_seconds)
		except asyncio.TimeoutError:
			logger.warning(f"{name} timed out for appointment {appointment_id}")
			return SideEffectOutcome(name=name, ok=False, error="timed out")
		except Exception as e:
			logger.warning(f"{name} failed for appointment {appointment_id}: {e}")
			return SideEffectOutcome(name=name, ok=False, error=str(e) or e.__class__.__name__)
		return SideEffectOutcome(name=name)

	def _has_calendar(self, doctor: DoctorProfile) -> bool:
		return bool(doctor.calendar and self.gateway)

	def _draft(
		self,
		appointment: Appointment,
		doctor: DoctorProfile,
		patient: Optional[Patient] = None,
	) -> CalendarEventDraft:
		return CalendarEventDraft(
			title=appointment.title or "Consulta",
			description=appointment.notes or "",
			start=appointment.date_time_utc,
			end=appointment.end_utc,
			timezone=self.normalizer.resolve_zone(doctor.timezone).name,
			attendee_emails=[patient.email] if patient and patient.email else [],
		)

	async def _mirror_create(self, appointment: Appointment, doctor: DoctorProfile, patient: Patient) -> Appointment:
		event = await self.gateway.create_event(doctor.calendar, self._draft(appointment, doctor, patient))
		return await self.store.update(appointment.model_copy(update={
			"external_event_id": event.id,
			"external_calendar_id": doctor.calendar.calendar_id,
		}))

	async def _notify(self, appointment: Appointment, doctor: DoctorProfile, patient: Optional[Patient], cancelled: bool) -> SideEffectOutcome:
		if not patient or not patient.notifications_enabled:
			return SideEffectOutcome(name=EFFECT_NOTIFICATION, skipped=True)

		if cancelled:
			awaitable = self.notifier.appointment_cancelled(appointment, patient, doctor)
		else:
			awaitable = self.notifier.appointment_booked(appointment, patient, doctor)
		return await self._side_effect(EFFECT_NOTIFICATION, appointment.id, awaitable)

	# ------------------------------------------------------------------
	# Operations
	# ------------------------------------------------------------------

	async def create(self, request: Union[AppointmentRequest, Dict[str, Any]]) -> LifecycleResult:
		"""
		Crea una cita.

		Args:
			request: AppointmentRequest (o dict equivalente)

		Returns:
			LifecycleResult: cita persistida + resultado de los side effects

		Raises:
			ValidationError, NotFoundError, ConflictError

		Algoritmo:
			1. Validar entrada
			2. Resolver paciente y doctor (en paralelo)
			3. Normalizar date_time a UTC con la zona del doctor
			4. Bajo el lock del doctor: verificar disponibilidad y persistir
			5. Espejar en el calendario externo (best-effort)
			6. Notificar al paciente (best-effort)
		"""
		if isinstance(request, dict):
			request = _build(AppointmentRequest, request)

		# 1. Validar entrada
		doctor_id = validate_identifier(request.doctor_id, "doctor_id")
		patient_id = validate_identifier(request.patient_id, "patient_id")
		local_time = parse_datetime(request.date_time)
		appointment_type = validate_appointment_type(request.type)
		if request.duration is not None:
			validate_duration(request.duration, self.settings)

		# 2. Resolver paciente y doctor
		patient, doctor = await asyncio.gather(
			self._get_patient(patient_id, doctor_id),
			self._get_doctor(doctor_id),
		)
		duration = validate_duration(request.duration or doctor.default_duration_minutes, self.settings)

		# 3. Normalizar a UTC
		zone = self.normalizer.resolve_zone(doctor.timezone).name
		start = self.normalizer.to_utc(local_time, zone)
		now = self.clock()

		appointment = Appointment(
			id=new_appointment_id(),
			doctor_id=doctor.id,
			patient_id=patient.id,
			date_time_utc=start,
			duration_minutes=duration,
			timezone_at_booking=zone,
			type=appointment_type,
			status=AppointmentStatus.SCHEDULED,
			title=f"Consulta con {patient.name}",
			notes=request.notes,
			created_at=now,
			updated_at=now,
		)

		# 4. Verificar y persistir de forma atómica por doctor
		async with self.store.booking_guard(doctor.id):
			await self.checker.ensure_available(doctor.id, start, duration, doctor=doctor)
			appointment = await self.store.insert(appointment)

		logger.info(f"Appointment {appointment.id} booked for doctor {doctor.id} at {start.isoformat()}")

		side_effects = []

		# 5. Espejo en calendario
		if self._has_calendar(doctor):
			mirrored = {}

			async def mirror():
				mirrored["appointment"] = await self._mirror_create(appointment, doctor, patient)

			side_effects.append(await self._side_effect(EFFECT_CALENDAR_MIRROR, appointment.id, mirror()))
			appointment = mirrored.get("appointment", appointment)
		else:
			side_effects.append(SideEffectOutcome(name=EFFECT_CALENDAR_MIRROR, skipped=True))

		# 6. Notificación
		side_effects.append(await self._notify(appointment, doctor, patient, cancelled=False))

		return LifecycleResult(appointment=appointment, side_effects=side_effects)

	async def update(
		self,
		appointment_id: str,
		doctor_id: str,
		changes: Union[AppointmentChanges, Dict[str, Any]],
	) -> LifecycleResult:
		"""
		Actualiza solo los campos provistos de una cita no terminal.

		Un nuevo date_time se interpreta en la zona actual del doctor. La
		disponibilidad se re-verifica solo si revalidate_on_update está activo.
		"""
		if isinstance(changes, dict):
			changes = _build(AppointmentChanges, changes)

		appointment = await self._get_owned(appointment_id, doctor_id)
		if appointment.is_terminal:
			raise ConflictError(
				f"Appointment {appointment.id} is {appointment.status.value} and cannot be modified",
				tier="status",
			)
		doctor = await self._get_doctor(appointment.doctor_id)

		update: Dict[str, Any] = {}
		if changes.date_time is not None:
			zone = self.normalizer.resolve_zone(doctor.timezone).name
			update["date_time_utc"] = self.normalizer.to_utc(parse_datetime(changes.date_time), zone)
			update["timezone_at_booking"] = zone
		if changes.duration is not None:
			update["duration_minutes"] = validate_duration(changes.duration, self.settings)
		if changes.type is not None:
			update["type"] = validate_appointment_type(changes.type)
		if changes.notes is not None:
			update["notes"] = changes.notes
		if changes.title is not None:
			update["title"] = changes.title

		if not update:
			raise ValidationError("No changes provided")
		update["updated_at"] = self.clock()

		updated = appointment.model_copy(update=update)
		reschedule = "date_time_utc" in update or "duration_minutes" in update

		if reschedule and self.settings.revalidate_on_update:
			async with self.store.booking_guard(doctor.id):
				await self.checker.ensure_available(
					doctor.id,
					updated.date_time_utc,
					updated.duration_minutes,
					exclude_appointment_id=appointment.id,
					exclude_event_id=appointment.external_event_id,
					doctor=doctor,
				)
				updated = await self.store.update(updated)
		else:
			updated = await self.store.update(updated)

		side_effects = []
		if appointment.external_event_id and self._has_calendar(doctor):
			side_effects.append(await self._side_effect(
				EFFECT_CALENDAR_MIRROR,
				updated.id,
				self.gateway.update_event(doctor.calendar, updated.external_event_id, self._draft(updated, doctor)),
			))
		else:
			side_effects.append(SideEffectOutcome(name=EFFECT_CALENDAR_MIRROR, skipped=True))

		return LifecycleResult(appointment=updated, side_effects=side_effects)

	async def cancel(self, appointment_id: str, doctor_id: str, reason: Optional[str] = None) -> LifecycleResult:
		"""
		Cancela una cita.

		Algoritmo:
			1. Rechazar si la cita ya está en estado terminal
			2. hours_until = date_time_utc - ahora
			3. Si hours_until < hours_notice del doctor, registrar penalidad
			4. Persistir status cancelled
			5. Borrar el evento espejo (best-effort)
			6. Notificar al paciente (best-effort)
		"""
		# 1. Estado
		appointment = await self._get_owned(appointment_id, doctor_id)
		self._check_transition(appointment, AppointmentStatus.CANCELLED)
		doctor = await self._get_doctor(appointment.doctor_id)

		# 2-3. Penalidad por aviso tardío
		now = self.clock()
		hours_until = (appointment.date_time_utc - now).total_seconds() / 3600
		policy = doctor.cancellation_policy
		penalty = policy.penalty_percentage if hours_until < policy.hours_notice else None

		# 4. Persistir
		appointment = await self.store.update(appointment.model_copy(update={
			"status": AppointmentStatus.CANCELLED,
			"cancellation_reason": reason or None,
			"cancellation_penalty": penalty,
			"updated_at": now,
		}))
		logger.info(
			f"Appointment {appointment.id} cancelled "
			f"({hours_until:.1f}h notice, penalty {penalty if penalty is not None else 'none'})"
		)

		side_effects = []

		# 5. Evento espejo
		if appointment.external_event_id and self._has_calendar(doctor):
			side_effects.append(await self._side_effect(
				EFFECT_CALENDAR_MIRROR,
				appointment.id,
				self.gateway.delete_event(doctor.calendar, appointment.external_event_id),
			))
		else:
			side_effects.append(SideEffectOutcome(name=EFFECT_CALENDAR_MIRROR, skipped=True))

		# 6. Notificación
		patient = None
		if appointment.patient_id:
			patient = await self.patients.get_patient(appointment.patient_id, appointment.doctor_id)
		side_effects.append(await self._notify(appointment, doctor, patient, cancelled=True))

		return LifecycleResult(appointment=appointment, side_effects=side_effects)

	async def _change_status(
		self,
		appointment_id: str,
		doctor_id: str,
		target: AppointmentStatus,
		extra: Optional[Dict[str, Any]] = None,
	) -> LifecycleResult:
		appointment = await self._get_owned(appointment_id, doctor_id)
		self._check_transition(appointment, target)

		update = {"status": target, "updated_at": self.clock()}
		update.update(extra or {})
		appointment = await self.store.update(appointment.model_copy(update=update))

		logger.info(f"Appointment {appointment.id} is now {target.value}")
		return LifecycleResult(appointment=appointment)

	async def confirm(self, appointment_id: str, doctor_id: str) -> LifecycleResult:
		return await self._change_status(appointment_id, doctor_id, AppointmentStatus.CONFIRMED)

	async def complete(
		self,
		appointment_id: str,
		doctor_id: str,
		consultation: Optional[Union[ConsultationDetails, Dict[str, Any]]] = None,
	) -> LifecycleResult:
		"""Cierra una cita confirmada adjuntando el resultado de la consulta."""
		if isinstance(consultation, dict):
			consultation = _build(ConsultationDetails, consultation)
		return await self._change_status(
			appointment_id,
			doctor_id,
			AppointmentStatus.COMPLETED,
			{"consultation": consultation or ConsultationDetails()},
		)

	async def mark_no_show(self, appointment_id: str, doctor_id: str) -> LifecycleResult:
		return await self._change_status(appointment_id, doctor_id, AppointmentStatus.NO_SHOW)

	async def get_details(self, appointment_id: str, doctor_id: str) -> AppointmentDetails:
		appointment = await self._get_owned(appointment_id, doctor_id)

		doctor = await self.doctors.get_doctor(appointment.doctor_id)
		patient = None
		if appointment.patient_id:
			patient = await self.patients.get_patient(appointment.patient_id, appointment.doctor_id)

		return AppointmentDetails(
			appointment=appointment,
			patient_name=patient.name if patient else None,
			patient_phone=patient.phone if patient else None,
			patient_email=patient.email if patient else None,
			doctor_name=doctor.name if doctor else None,
			local_date_time=self.normalizer.to_zone(appointment.date_time_utc, appointment.timezone_at_booking),
		)
