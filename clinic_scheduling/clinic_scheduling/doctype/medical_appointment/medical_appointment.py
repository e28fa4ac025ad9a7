# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Medical Appointment DocType

Persisted appointment. Scheduling decisions (availability, mirroring,
notifications) live in the scheduling engine; this controller only guards
the record invariants on every save, including edits from the Desk.
"""

import frappe
from frappe import _
from frappe.model.document import Document

from clinic_scheduling.clinic_scheduling.scheduling.models import (
	TERMINAL_STATUSES,
	AppointmentStatus,
	can_transition,
)
from clinic_scheduling.clinic_scheduling.stores.frappe_store import get_settings


# Campos que fijan el horario; no cambian en una cita terminal
SCHEDULE_FIELDS = ("date_time_utc", "duration_minutes", "doctor")


class MedicalAppointment(Document):
	"""
	Medical Appointment con validación de invariantes.

	Validaciones:
	- doctor, date_time_utc y duration_minutes requeridos
	- 0 < duration_minutes <= max_duration_minutes
	- Transiciones de estado monótonas
	- Citas terminales no cambian de horario
	- external_event_id único por doctor
	"""

	def validate(self) -> None:
		self._validate_required()
		self._validate_duration()
		self._validate_status_transition()
		self._validate_external_event_unique()

	def _validate_required(self) -> None:
		if not self.doctor:
			frappe.throw(_("Doctor es requerido"))
		if not self.date_time_utc:
			frappe.throw(_("Date Time (UTC) es requerido"))
		if not self.status:
			self.status = AppointmentStatus.SCHEDULED.value

	def _validate_duration(self) -> None:
		max_minutes = get_settings().max_duration_minutes
		if not self.duration_minutes or self.duration_minutes <= 0:
			frappe.throw(_("La duración debe ser mayor que 0"))
		if self.duration_minutes > max_minutes:
			frappe.throw(_("La duración no puede superar {0} minutos").format(max_minutes))

	def _validate_status_transition(self) -> None:
		"""
		Valida el cambio de estado contra la máquina de estados.

		Flujo:
		scheduled -> confirmed -> completed
		scheduled | confirmed -> cancelled | no_show
		"""
		before = self.get_doc_before_save()
		if not before:
			return

		if before.status in {s.value for s in TERMINAL_STATUSES}:
			for field in SCHEDULE_FIELDS:
				if str(before.get(field)) != str(self.get(field)):
					frappe.throw(_("La cita está {0} y no puede reprogramarse").format(before.status))

		if before.status != self.status and not can_transition(before.status, self.status):
			frappe.throw(
				_("Transición de estado inválida: {0} -> {1}").format(before.status, self.status)
			)

	def _validate_external_event_unique(self) -> None:
		if not self.external_event_id:
			return

		duplicate = frappe.db.exists(
			"Medical Appointment",
			{
				"doctor": self.doctor,
				"external_event_id": self.external_event_id,
				"name": ["!=", self.name],
			},
		)
		if duplicate:
			frappe.throw(
				_("El evento externo {0} ya está enlazado a la cita {1}").format(
					self.external_event_id, duplicate
				)
			)
