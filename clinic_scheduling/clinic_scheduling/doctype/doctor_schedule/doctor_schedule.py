# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Doctor Schedule DocType

Perfil de agenda del doctor: zona horaria, horario semanal (una fila por
día), duración por defecto, política de cancelación y calendario externo.
"""

import frappe
from frappe import _
from frappe.model.document import Document

from clinic_scheduling.clinic_scheduling.scheduling.models import WEEKDAYS
from clinic_scheduling.clinic_scheduling.stores.frappe_store import get_settings, to_time


class DoctorSchedule(Document):
	"""
	Doctor Schedule with validation for working hours.

	Validations:
	- timezone soportada
	- A lo sumo una fila por weekday
	- Cada fila disponible: start_time < end_time
	- default_duration_minutes dentro del máximo
	- Penalidad entre 0 y 100
	"""

	def validate(self) -> None:
		self._validate_timezone()
		self._validate_working_hours()
		self._validate_default_duration()
		self._validate_cancellation_policy()

	def _validate_timezone(self) -> None:
		settings = get_settings()
		if not self.timezone:
			self.timezone = settings.default_timezone
		elif self.timezone not in settings.supported_timezones:
			frappe.throw(
				_("Zona horaria {0} no soportada. Use una de: {1}").format(
					self.timezone, ", ".join(settings.supported_timezones)
				)
			)

	def _validate_working_hours(self) -> None:
		seen = set()

		for idx, row in enumerate(self.working_hours or [], 1):
			weekday = (row.weekday or "").lower()
			if weekday not in WEEKDAYS:
				frappe.throw(_("Fila {0}: Weekday inválido ({1})").format(idx, row.weekday))

			if weekday in seen:
				frappe.throw(_("Fila {0}: {1} está repetido").format(idx, weekday))
			seen.add(weekday)
			row.weekday = weekday

			if not row.available:
				continue

			if not row.start_time or not row.end_time:
				frappe.throw(_("Fila {0} ({1}): Start Time y End Time son requeridos").format(idx, weekday))

			start = to_time(row.start_time)
			end = to_time(row.end_time)
			if start >= end:
				frappe.throw(
					_("Fila {0} ({1}): Start Time ({2}) debe ser menor que End Time ({3})").format(
						idx, weekday, start.strftime("%H:%M"), end.strftime("%H:%M")
					)
				)

	def _validate_default_duration(self) -> None:
		max_minutes = get_settings().max_duration_minutes
		if not self.default_duration_minutes:
			self.default_duration_minutes = 60
		if not 0 < self.default_duration_minutes <= max_minutes:
			frappe.throw(_("Default Duration debe estar entre 1 y {0} minutos").format(max_minutes))

	def _validate_cancellation_policy(self) -> None:
		if self.cancellation_notice_hours is not None and self.cancellation_notice_hours < 0:
			frappe.throw(_("Cancellation Notice Hours no puede ser negativo"))
		if not 0 <= (self.cancellation_penalty_percentage or 0) <= 100:
			frappe.throw(_("Cancellation Penalty debe estar entre 0 y 100"))
