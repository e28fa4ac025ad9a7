"""
Slot Generation Service

Generates discrete time slots for UI display, considering:
- The doctor's working hours for each day
- Existing non-cancelled appointments
"""

from datetime import date, timedelta
from typing import List, Optional, Union

from .availability import AvailabilityChecker
from .models import DoctorProfile, Slot
from .overlap import fetch_bookings, find_overlapping
from .validators import parse_date, validate_date_range, validate_duration


class SlotGenerator:
	def __init__(self, checker: AvailabilityChecker):
		self.checker = checker
		self.settings = checker.settings

	async def generate_slots(
		self,
		doctor_id: str,
		local_date: Union[date, str],
		duration: Optional[int] = None,
		doctor: Optional[DoctorProfile] = None,
	) -> List[Slot]:
		"""
		Genera slots discretos para un día local del doctor.

		Args:
			doctor_id: doctor
			local_date: fecha en la zona del doctor
			duration: minutos por cita (por defecto la del doctor)

		Returns:
			list[Slot]: ordenados, start/end en UTC

		Algoritmo:
			1. Obtener horario laboral del día
			2. Convertir la ventana local a UTC
			3. Obtener citas del día una sola vez
			4. Recorrer la ventana cada slot_step_minutes
			5. Marcar cada [step, step + duration) libre u ocupado
			6. Descartar el slot final parcial
		"""
		local_date = parse_date(local_date, "date")
		if doctor is None:
			doctor = await self.checker.get_doctor(doctor_id)
		duration = validate_duration(
			duration if duration is not None else doctor.default_duration_minutes,
			self.settings,
		)

		# 1-2. Ventana laboral en UTC
		window = self.checker.working_window(doctor, local_date)
		if window is None:
			return []
		work_start, work_end = window

		# 3. Citas existentes
		bookings = await fetch_bookings(
			self.checker.store,
			doctor.id,
			work_start,
			work_end,
			self.settings.max_duration_minutes,
		)

		step = timedelta(minutes=self.settings.slot_step_minutes)
		length = timedelta(minutes=duration)
		slots = []

		# 4. Recorrer la ventana
		current_start = work_start
		while current_start < work_end:
			current_end = current_start + length

			# 6. Si el slot se pasa de la ventana, terminar
			if current_end > work_end:
				break

			# 5. Verificar overlaps
			busy = find_overlapping(bookings, current_start, current_end)
			slots.append(Slot(start=current_start, end=current_end, available=not busy))

			current_start += step

		return slots

	async def get_doctor_availability(
		self,
		doctor_id: str,
		start_date: Union[date, str],
		end_date: Union[date, str],
		duration: Optional[int] = None,
	) -> List[Slot]:
		"""Slots de cada día del rango [start_date, end_date], concatenados."""
		start_date = parse_date(start_date, "start_date")
		end_date = parse_date(end_date, "end_date")
		validate_date_range(start_date, end_date, self.settings)

		doctor = await self.checker.get_doctor(doctor_id)

		slots: List[Slot] = []
		current = start_date
		while current <= end_date:
			slots.extend(await self.generate_slots(doctor.id, current, duration, doctor=doctor))
			current += timedelta(days=1)
		return slots
