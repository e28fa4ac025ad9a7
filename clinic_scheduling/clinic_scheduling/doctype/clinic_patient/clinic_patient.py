# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Clinic Patient DocType

Paciente de un doctor. Solo lo necesario para agendar y notificar.
"""

import frappe
from frappe import _
from frappe.model.document import Document


class ClinicPatient(Document):
	def validate(self) -> None:
		if not self.doctor:
			frappe.throw(_("Doctor es requerido"))
		if self.email:
			self.email = self.email.strip().lower()
