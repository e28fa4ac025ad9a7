"""
Overlap Detection Service

Detects scheduling conflicts between a candidate interval and a doctor's
existing appointments (the local-store availability tier).
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .models import BLOCKING_STATUSES, Appointment
from .ports import AppointmentStore


def intervals_overlap(
	start_a: datetime,
	end_a: datetime,
	start_b: datetime,
	end_b: datetime,
) -> bool:
	"""Intervalos semiabiertos [start, end): tocarse en el borde no es overlap."""
	return start_a < end_b and end_a > start_b


def find_overlapping(
	appointments: Iterable[Appointment],
	start: datetime,
	end: datetime,
	exclude_appointment_id: Optional[str] = None,
) -> List[Appointment]:
	return [
		appt for appt in appointments
		if appt.id != exclude_appointment_id
		and appt.status in BLOCKING_STATUSES
		and intervals_overlap(appt.date_time_utc, appt.end_utc, start, end)
	]


async def fetch_bookings(
	store: AppointmentStore,
	doctor_id: str,
	start: datetime,
	end: datetime,
	max_duration_minutes: int,
) -> List[Appointment]:
	"""
	Citas no canceladas que podrían solaparse con [start, end).

	El store filtra por hora de inicio, así que la ventana se extiende hacia
	atrás la duración máxima de una cita.
	"""
	return await store.query(
		doctor_id,
		start=start - timedelta(minutes=max_duration_minutes),
		end=end,
		statuses=BLOCKING_STATUSES,
	)


async def check_overlap(
	store: AppointmentStore,
	doctor_id: str,
	start: datetime,
	end: datetime,
	max_duration_minutes: int,
	exclude_appointment_id: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Detecta overlaps con citas existentes del doctor.

	Args:
		store: AppointmentStore
		doctor_id: doctor dueño de la agenda
		start: inicio (UTC) del rango a validar
		end: fin (UTC) del rango a validar
		max_duration_minutes: duración máxima de una cita
		exclude_appointment_id: cita a excluir (reprogramaciones)

	Returns:
		dict: {
			"has_overlap": bool,
			"overlapping_appointments": [ids]
		}

	Algoritmo:
		1. Consultar citas no canceladas del doctor cerca del rango
		2. Filtrar las que cumplen existing.start < end AND existing.end > start
		3. Excluir la cita indicada
	"""
	# 1. Obtener candidatas
	bookings = await fetch_bookings(store, doctor_id, start, end, max_duration_minutes)

	# 2-3. Filtrar overlaps reales
	overlapping = find_overlapping(bookings, start, end, exclude_appointment_id)

	return {
		"has_overlap": bool(overlapping),
		"overlapping_appointments": [appt.id for appt in overlapping],
	}
