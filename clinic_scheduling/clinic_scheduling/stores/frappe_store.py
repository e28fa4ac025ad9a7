# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Frappe Store

Frappe-backed implementations of the scheduling ports:
- FrappeAppointmentStore (Medical Appointment)
- FrappeDoctorDirectory (Doctor Schedule + Working Hours Slot rows)
- FrappePatientDirectory (Clinic Patient)

Datetime fields are stored as naive UTC; they become UTC-aware on read.
"""

from contextlib import asynccontextmanager
from datetime import datetime, time, timedelta
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import frappe
import pytz
from frappe.utils import get_datetime, get_time

from ..calendar_gateways.factory import get_gateway
from ..notifications.appointment import FrappeNotifier
from ..scheduling.exceptions import ConflictError
from ..scheduling.models import (
	Appointment,
	AppointmentStatus,
	CalendarCredential,
	CancellationPolicy,
	ConsultationDetails,
	DoctorProfile,
	Patient,
	WorkingDay,
	WorkingHours,
	WEEKDAYS,
)
from ..scheduling.ports import AppointmentStore, DoctorDirectory, PatientDirectory
from ..scheduling.service import SchedulingService
from ..scheduling.settings import SchedulingSettings, load_settings
from ..scheduling.timezones import TimezoneNormalizer


APPOINTMENT_DOCTYPE = "Medical Appointment"
SCHEDULE_DOCTYPE = "Doctor Schedule"
PATIENT_DOCTYPE = "Clinic Patient"

APPOINTMENT_FIELDS = [
	"name",
	"doctor",
	"patient",
	"date_time_utc",
	"duration_minutes",
	"timezone_at_booking",
	"appointment_type",
	"status",
	"title",
	"notes",
	"external_event_id",
	"external_calendar_id",
	"cancellation_reason",
	"cancellation_penalty",
	"penalty_applied",
	"diagnosis",
	"prescription",
	"next_appointment",
	"consultation_notes",
	"creation",
	"modified",
]


def from_db(value: Any) -> Optional[datetime]:
	"""Datetime naive UTC de la base -> datetime aware UTC."""
	if not value:
		return None
	value = get_datetime(value)
	if value.tzinfo is None:
		return pytz.UTC.localize(value)
	return value.astimezone(pytz.UTC)


def to_db(value: Optional[datetime]) -> Optional[datetime]:
	"""Datetime aware -> naive UTC para guardar."""
	if value is None:
		return None
	return value.astimezone(pytz.UTC).replace(tzinfo=None)


def to_time(value: Any) -> time:
	"""Convierte time, timedelta (desde medianoche) o string a datetime.time."""
	if isinstance(value, time):
		return value
	if isinstance(value, timedelta):
		return (datetime.min + value).time()
	return get_time(value)


def appointment_from_row(row: Dict[str, Any]) -> Appointment:
	consultation = None
	if row.get("status") == AppointmentStatus.COMPLETED.value:
		consultation = ConsultationDetails(
			diagnosis=row.get("diagnosis"),
			prescription=row.get("prescription"),
			next_appointment=from_db(row.get("next_appointment")),
			notes=row.get("consultation_notes"),
		)

	return Appointment(
		id=row["name"],
		doctor_id=row["doctor"],
		patient_id=row.get("patient") or None,
		date_time_utc=from_db(row["date_time_utc"]),
		duration_minutes=row["duration_minutes"],
		timezone_at_booking=row.get("timezone_at_booking") or SchedulingSettings().default_timezone,
		type=row.get("appointment_type") or "presential",
		status=row.get("status") or "scheduled",
		title=row.get("title"),
		notes=row.get("notes"),
		external_event_id=row.get("external_event_id") or None,
		external_calendar_id=row.get("external_calendar_id") or None,
		cancellation_reason=row.get("cancellation_reason"),
		# Percent guarda 0 cuando no hay penalidad; penalty_applied distingue un 0% real
		cancellation_penalty=row.get("cancellation_penalty") if row.get("penalty_applied") else None,
		consultation=consultation,
		created_at=from_db(row.get("creation")),
		updated_at=from_db(row.get("modified")),
	)


def appointment_to_fields(appointment: Appointment) -> Dict[str, Any]:
	consultation = appointment.consultation or ConsultationDetails()
	return {
		"doctor": appointment.doctor_id,
		"patient": appointment.patient_id,
		"date_time_utc": to_db(appointment.date_time_utc),
		"duration_minutes": appointment.duration_minutes,
		"timezone_at_booking": appointment.timezone_at_booking,
		"appointment_type": appointment.type.value,
		"status": appointment.status.value,
		"title": appointment.title,
		"notes": appointment.notes,
		"external_event_id": appointment.external_event_id,
		"external_calendar_id": appointment.external_calendar_id,
		"cancellation_reason": appointment.cancellation_reason,
		"cancellation_penalty": appointment.cancellation_penalty or 0,
		"penalty_applied": 1 if appointment.cancellation_penalty is not None else 0,
		"diagnosis": consultation.diagnosis,
		"prescription": consultation.prescription,
		"next_appointment": to_db(consultation.next_appointment),
		"consultation_notes": consultation.notes,
	}


class FrappeAppointmentStore(AppointmentStore):
	"""Citas en el DocType Medical Appointment."""

	def _load(self, name: str) -> Appointment:
		row = frappe.db.get_value(APPOINTMENT_DOCTYPE, name, APPOINTMENT_FIELDS, as_dict=True)
		return appointment_from_row(row)

	async def get(self, appointment_id: str) -> Optional[Appointment]:
		if not frappe.db.exists(APPOINTMENT_DOCTYPE, appointment_id):
			return None
		return self._load(appointment_id)

	async def insert(self, appointment: Appointment) -> Appointment:
		if appointment.external_event_id and frappe.db.exists(
			APPOINTMENT_DOCTYPE,
			{"doctor": appointment.doctor_id, "external_event_id": appointment.external_event_id},
		):
			raise ConflictError(
				f"External event {appointment.external_event_id} is already linked for doctor {appointment.doctor_id}",
				tier="local_store",
			)

		doc = frappe.get_doc({"doctype": APPOINTMENT_DOCTYPE, **appointment_to_fields(appointment)})
		doc.insert(ignore_permissions=True, set_name=appointment.id)

		# Libera el lock de booking_guard
		frappe.db.commit()
		return self._load(doc.name)

	async def update(self, appointment: Appointment) -> Appointment:
		doc = frappe.get_doc(APPOINTMENT_DOCTYPE, appointment.id)
		doc.update(appointment_to_fields(appointment))
		doc.save(ignore_permissions=True)
		frappe.db.commit()
		return self._load(doc.name)

	async def query(
		self,
		doctor_id: str,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		statuses: Optional[Iterable[AppointmentStatus]] = None,
		patient_id: Optional[str] = None,
	) -> List[Appointment]:
		filters = [["doctor", "=", doctor_id]]
		if start:
			filters.append(["date_time_utc", ">=", to_db(start)])
		if end:
			filters.append(["date_time_utc", "<", to_db(end)])
		if statuses is not None:
			filters.append(["status", "in", [AppointmentStatus(s).value for s in statuses]])
		if patient_id:
			filters.append(["patient", "=", patient_id])

		rows = frappe.get_all(
			APPOINTMENT_DOCTYPE,
			filters=filters,
			fields=APPOINTMENT_FIELDS,
			order_by="date_time_utc asc",
		)
		return [appointment_from_row(row) for row in rows]

	async def find_by_external_event(self, doctor_id: str, external_event_id: str) -> Optional[Appointment]:
		rows = frappe.get_all(
			APPOINTMENT_DOCTYPE,
			filters={"doctor": doctor_id, "external_event_id": external_event_id},
			fields=APPOINTMENT_FIELDS,
			limit=1,
		)
		return appointment_from_row(rows[0]) if rows else None

	@asynccontextmanager
	async def booking_guard(self, doctor_id: str) -> AsyncIterator[None]:
		"""Lock de fila sobre el Doctor Schedule hasta el commit del insert."""
		frappe.db.get_value(SCHEDULE_DOCTYPE, doctor_id, "name", for_update=True)
		yield


class FrappeDoctorDirectory(DoctorDirectory):
	"""Perfil de agenda del doctor en el DocType Doctor Schedule."""

	def _working_hours(self, doc) -> WorkingHours:
		# Sin filas: plantilla por defecto (lunes a viernes 09:00-18:00)
		if not doc.working_hours:
			return WorkingHours()

		days: Dict[str, WorkingDay] = {day: WorkingDay(available=False) for day in WEEKDAYS}
		for row in doc.working_hours or []:
			days[row.weekday.lower()] = WorkingDay(
				start=to_time(row.start_time),
				end=to_time(row.end_time),
				available=bool(row.available),
			)
		return WorkingHours(**days)

	def _calendar(self, doc) -> Optional[CalendarCredential]:
		if not doc.calendar_id:
			return None
		token = doc.get_password("calendar_access_token", raise_exception=False)
		if not token:
			return None
		return CalendarCredential(
			provider=doc.calendar_provider or "google_calendar",
			calendar_id=doc.calendar_id,
			access_token=token,
		)

	async def get_doctor(self, doctor_id: str) -> Optional[DoctorProfile]:
		if not frappe.db.exists(SCHEDULE_DOCTYPE, doctor_id):
			return None

		doc = frappe.get_doc(SCHEDULE_DOCTYPE, doctor_id)
		return DoctorProfile(
			id=doc.name,
			name=doc.doctor_name or doc.name,
			timezone=doc.timezone or SchedulingSettings().default_timezone,
			working_hours=self._working_hours(doc),
			default_duration_minutes=doc.default_duration_minutes or 60,
			cancellation_policy=CancellationPolicy(
				hours_notice=doc.cancellation_notice_hours if doc.cancellation_notice_hours is not None else 24,
				penalty_percentage=doc.cancellation_penalty_percentage or 0,
			),
			calendar=self._calendar(doc),
			last_synced_at=from_db(doc.last_synced_at),
			next_sync_at=from_db(doc.next_sync_at),
		)

	async def list_calendar_doctors(self) -> List[DoctorProfile]:
		names = frappe.get_all(
			SCHEDULE_DOCTYPE,
			filters={"calendar_id": ["is", "set"], "is_active": 1},
			pluck="name",
		)
		doctors = []
		for name in names:
			doctor = await self.get_doctor(name)
			if doctor and doctor.calendar:
				doctors.append(doctor)
		return doctors

	async def save_sync_checkpoint(self, doctor_id: str, last_synced_at: datetime, next_sync_at: datetime) -> None:
		frappe.db.set_value(
			SCHEDULE_DOCTYPE,
			doctor_id,
			{"last_synced_at": to_db(last_synced_at), "next_sync_at": to_db(next_sync_at)},
			update_modified=False,
		)
		frappe.db.commit()


class FrappePatientDirectory(PatientDirectory):
	async def get_patient(self, patient_id: str, doctor_id: str) -> Optional[Patient]:
		row = frappe.db.get_value(
			PATIENT_DOCTYPE,
			patient_id,
			["name", "doctor", "patient_name", "phone", "email", "notifications_enabled"],
			as_dict=True,
		)
		if not row or row.doctor != doctor_id:
			return None

		return Patient(
			id=row.name,
			doctor_id=row.doctor,
			name=row.patient_name or row.name,
			phone=row.phone,
			email=row.email,
			notifications_enabled=bool(row.notifications_enabled),
		)


def get_settings() -> SchedulingSettings:
	"""Settings desde la clave `clinic_scheduling` de site_config.json."""
	return load_settings(frappe.conf.get("clinic_scheduling"))


def build_service(settings: Optional[SchedulingSettings] = None) -> SchedulingService:
	settings = settings or get_settings()
	normalizer = TimezoneNormalizer(settings)
	return SchedulingService(
		store=FrappeAppointmentStore(),
		doctors=FrappeDoctorDirectory(),
		patients=FrappePatientDirectory(),
		gateway=get_gateway("google_calendar"),
		notifier=FrappeNotifier(normalizer),
		settings=settings,
		normalizer=normalizer,
	)
