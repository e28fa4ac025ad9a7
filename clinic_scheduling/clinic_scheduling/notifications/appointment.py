# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Appointment Notification Service

Sends plain email notices to the patient when an appointment is booked or
cancelled. Supports extensibility via hooks:
  - appointment_email_recipients: add extra recipients
"""

from typing import List, Optional

import frappe
from frappe import _

from ..scheduling.models import Appointment, DoctorProfile, Patient
from ..scheduling.ports import Notifier
from ..scheduling.timezones import TimezoneNormalizer


def has_outgoing_email() -> bool:
	"""Return True if at least one outgoing Email Account is configured in Frappe."""
	return bool(frappe.db.count("Email Account", {"enable_outgoing": 1}))


def booked_message(appointment: Appointment, doctor: DoctorProfile, normalizer: TimezoneNormalizer) -> str:
	local = normalizer.to_zone(appointment.date_time_utc, appointment.timezone_at_booking)
	return _("Tu cita con {0} quedó agendada para el {1} a las {2}.").format(
		doctor.name or doctor.id,
		local.strftime("%d/%m/%Y"),
		local.strftime("%H:%M"),
	)


def cancelled_message(appointment: Appointment, normalizer: TimezoneNormalizer) -> str:
	local = normalizer.to_zone(appointment.date_time_utc, appointment.timezone_at_booking)
	return _("Tu cita del {0} a las {1} ha sido cancelada.\nMotivo: {2}").format(
		local.strftime("%d/%m/%Y"),
		local.strftime("%H:%M"),
		appointment.cancellation_reason or _("Sin motivo"),
	)


class FrappeNotifier(Notifier):
	"""
	Envía avisos por email con frappe.sendmail.

	Los errores de envío se propagan; el motor los registra como side
	effect fallido sin afectar la cita.
	"""

	def __init__(self, normalizer: Optional[TimezoneNormalizer] = None):
		self.normalizer = normalizer or TimezoneNormalizer()

	def _recipients(self, appointment: Appointment, patient: Patient) -> List[str]:
		recipients = [patient.email] if patient.email else []

		# --- Additional recipients from other apps ---
		for hook_path in frappe.get_hooks("appointment_email_recipients"):
			try:
				extra = frappe.get_attr(hook_path)(appointment)
				if extra:
					recipients.extend(extra)
			except Exception:
				frappe.log_error(
					f"Error in appointment_email_recipients hook: {hook_path}",
					"Appointment Notification"
				)

		# Deduplicate and remove empty
		return list({r for r in recipients if r})

	def _send(self, appointment: Appointment, patient: Patient, subject: str, message: str) -> None:
		if not has_outgoing_email():
			frappe.logger("clinic_scheduling").warning(
				f"Appointment notification skipped for {appointment.id}: "
				"no outgoing Email Account configured in Frappe."
			)
			return

		recipients = self._recipients(appointment, patient)
		if not recipients:
			frappe.logger("clinic_scheduling").info(
				f"No notification recipients for appointment {appointment.id}, skipping email."
			)
			return

		frappe.sendmail(
			recipients=recipients,
			subject=subject,
			message=message.replace("\n", "<br>"),
			reference_doctype="Medical Appointment",
			reference_name=appointment.id,
		)

		frappe.logger("clinic_scheduling").info(
			f"Appointment notification sent for {appointment.id} to {recipients}"
		)

	async def appointment_booked(self, appointment: Appointment, patient: Patient, doctor: DoctorProfile) -> None:
		self._send(
			appointment,
			patient,
			_("[Cita Agendada] {0}").format(doctor.name or doctor.id),
			booked_message(appointment, doctor, self.normalizer),
		)

	async def appointment_cancelled(self, appointment: Appointment, patient: Patient, doctor: DoctorProfile) -> None:
		self._send(
			appointment,
			patient,
			_("[Cita Cancelada] {0}").format(doctor.name or doctor.id),
			cancelled_message(appointment, self.normalizer),
		)
