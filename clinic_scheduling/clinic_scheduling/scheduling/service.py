"""
Scheduling Service

Facade wiring the scheduling components together over injected
collaborators. This is the request/response contract the HTTP controllers
(api/appointments) and the scheduled tasks call into.
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..calendar_gateways.base import CalendarGateway
from .availability import AvailabilityChecker
from .lifecycle import AppointmentChanges, AppointmentLifecycle, AppointmentRequest
from .models import (
	AppointmentDetails,
	AppointmentPage,
	AvailabilityReport,
	ConsultationDetails,
	ExternalCalendarEvent,
	LifecycleResult,
	Slot,
	SyncResult,
	utc_now,
)
from .ports import AppointmentStore, DoctorDirectory, Notifier, PatientDirectory
from .reconciliation import CalendarReconciler
from .settings import SchedulingSettings
from .slots import SlotGenerator
from .timezones import TimezoneNormalizer


class SchedulingService:
	def __init__(
		self,
		store: AppointmentStore,
		doctors: DoctorDirectory,
		patients: PatientDirectory,
		gateway: Optional[CalendarGateway] = None,
		notifier: Optional[Notifier] = None,
		settings: Optional[SchedulingSettings] = None,
		clock: Callable[[], datetime] = utc_now,
		normalizer: Optional[TimezoneNormalizer] = None,
	):
		self.settings = settings or SchedulingSettings()
		self.gateway = gateway
		self.normalizer = normalizer or TimezoneNormalizer(self.settings)

		self.checker = AvailabilityChecker(store, doctors, gateway, self.normalizer, self.settings)
		self.slots = SlotGenerator(self.checker)
		self.reconciler = CalendarReconciler(store, doctors, gateway, self.normalizer, self.settings, clock)
		self.lifecycle = AppointmentLifecycle(
			store,
			doctors,
			patients,
			self.checker,
			gateway=gateway,
			notifier=notifier,
			normalizer=self.normalizer,
			settings=self.settings,
			clock=clock,
		)

	async def aclose(self) -> None:
		if self.gateway:
			await self.gateway.aclose()

	# Availability

	async def check_availability(self, doctor_id: str, date_time_utc: datetime, duration: int) -> bool:
		return await self.checker.is_available(doctor_id, date_time_utc, duration)

	async def validate_appointment(
		self,
		doctor_id: str,
		date_time_utc: datetime,
		duration: int,
		exclude_appointment_id: Optional[str] = None,
	) -> AvailabilityReport:
		return await self.checker.evaluate(
			doctor_id,
			date_time_utc,
			duration,
			exclude_appointment_id=exclude_appointment_id,
		)

	async def get_available_slots(
		self,
		doctor_id: str,
		local_date: Union[date, str],
		duration: Optional[int] = None,
	) -> List[Slot]:
		return await self.slots.generate_slots(doctor_id, local_date, duration)

	async def get_doctor_availability(
		self,
		doctor_id: str,
		start_date: Union[date, str],
		end_date: Union[date, str],
	) -> List[Slot]:
		return await self.slots.get_doctor_availability(doctor_id, start_date, end_date)

	# Appointments

	async def create_appointment(self, request: Union[AppointmentRequest, Dict[str, Any]]) -> LifecycleResult:
		return await self.lifecycle.create(request)

	async def update_appointment(
		self,
		appointment_id: str,
		doctor_id: str,
		changes: Union[AppointmentChanges, Dict[str, Any]],
	) -> LifecycleResult:
		return await self.lifecycle.update(appointment_id, doctor_id, changes)

	async def cancel_appointment(self, appointment_id: str, doctor_id: str, reason: Optional[str] = None) -> LifecycleResult:
		return await self.lifecycle.cancel(appointment_id, doctor_id, reason)

	async def confirm_appointment(self, appointment_id: str, doctor_id: str) -> LifecycleResult:
		return await self.lifecycle.confirm(appointment_id, doctor_id)

	async def complete_appointment(
		self,
		appointment_id: str,
		doctor_id: str,
		consultation: Optional[Union[ConsultationDetails, Dict[str, Any]]] = None,
	) -> LifecycleResult:
		return await self.lifecycle.complete(appointment_id, doctor_id, consultation)

	async def mark_no_show(self, appointment_id: str, doctor_id: str) -> LifecycleResult:
		return await self.lifecycle.mark_no_show(appointment_id, doctor_id)

	async def get_appointment(self, appointment_id: str, doctor_id: str) -> AppointmentDetails:
		return await self.lifecycle.get_details(appointment_id, doctor_id)

	async def list_appointments(
		self,
		doctor_id: str,
		start_date: Optional[datetime] = None,
		end_date: Optional[datetime] = None,
		status: Optional[Union[str, Iterable[str]]] = None,
		patient_id: Optional[str] = None,
		page: Optional[int] = 1,
		limit: Optional[int] = None,
	) -> AppointmentPage:
		return await self.reconciler.list_authoritative(
			doctor_id,
			start=start_date,
			end=end_date,
			status=status,
			patient_id=patient_id,
			page=page,
			limit=limit,
		)

	# Calendar

	async def sync_calendar(self, doctor_id: str) -> SyncResult:
		return await self.reconciler.sync(doctor_id)

	async def list_calendar_events(
		self,
		doctor_id: str,
		start_date: Optional[datetime] = None,
		end_date: Optional[datetime] = None,
	) -> List[ExternalCalendarEvent]:
		return await self.reconciler.fetch_events(doctor_id, start_date, end_date)
