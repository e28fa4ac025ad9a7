"""
Scheduling Ports

Interfaces the scheduling engine depends on. Concrete implementations are
injected: the Frappe adapters in production (stores/frappe_store.py,
notifications/appointment.py) and in-memory fakes in tests.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional

from .models import Appointment, AppointmentStatus, DoctorProfile, Patient


class AppointmentStore(ABC):
	"""
	Persistencia de citas.

	Todas las fechas que entran y salen son UTC aware. Las citas nunca se
	borran; la cancelación es un cambio de estado.
	"""

	@abstractmethod
	async def get(self, appointment_id: str) -> Optional[Appointment]:
		pass

	@abstractmethod
	async def insert(self, appointment: Appointment) -> Appointment:
		"""
		Persiste una cita nueva.

		Raises:
			ConflictError: si external_event_id ya existe para el mismo doctor
		"""
		pass

	@abstractmethod
	async def update(self, appointment: Appointment) -> Appointment:
		pass

	@abstractmethod
	async def query(
		self,
		doctor_id: str,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		statuses: Optional[Iterable[AppointmentStatus]] = None,
		patient_id: Optional[str] = None,
	) -> List[Appointment]:
		"""
		Citas del doctor cuyo date_time_utc cae en [start, end), ordenadas
		ascendentemente por date_time_utc.
		"""
		pass

	@abstractmethod
	async def find_by_external_event(
		self,
		doctor_id: str,
		external_event_id: str,
	) -> Optional[Appointment]:
		pass

	@asynccontextmanager
	async def booking_guard(self, doctor_id: str) -> AsyncIterator[None]:
		"""
		Serializa verificar-y-persistir por doctor.

		La implementación por defecto usa un asyncio.Lock por doctor dentro del
		proceso; un store con base de datos puede usar un lock de fila.
		"""
		locks: Dict[str, asyncio.Lock] = self.__dict__.setdefault("_booking_locks", {})
		lock = locks.setdefault(doctor_id, asyncio.Lock())
		async with lock:
			yield


class DoctorDirectory(ABC):
	@abstractmethod
	async def get_doctor(self, doctor_id: str) -> Optional[DoctorProfile]:
		pass

	@abstractmethod
	async def list_calendar_doctors(self) -> List[DoctorProfile]:
		"""Doctores con calendario externo conectado."""
		pass

	@abstractmethod
	async def save_sync_checkpoint(
		self,
		doctor_id: str,
		last_synced_at: datetime,
		next_sync_at: datetime,
	) -> None:
		pass


class PatientDirectory(ABC):
	@abstractmethod
	async def get_patient(self, patient_id: str, doctor_id: str) -> Optional[Patient]:
		"""Paciente `patient_id` perteneciente al doctor `doctor_id`."""
		pass


class Notifier(ABC):
	"""Avisos al paciente. Siempre best-effort para el motor."""

	@abstractmethod
	async def appointment_booked(
		self,
		appointment: Appointment,
		patient: Patient,
		doctor: DoctorProfile,
	) -> None:
		pass

	@abstractmethod
	async def appointment_cancelled(
		self,
		appointment: Appointment,
		patient: Patient,
		doctor: DoctorProfile,
	) -> None:
		pass


class NullNotifier(Notifier):
	async def appointment_booked(self, appointment, patient, doctor) -> None:
		return None

	async def appointment_cancelled(self, appointment, patient, doctor) -> None:
		return None
