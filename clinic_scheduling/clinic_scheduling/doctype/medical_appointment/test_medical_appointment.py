# Copyright (c) 2026, Sebastian Ortiz Valencia and Contributors
# See license.txt

"""
Tests for Medical Appointment DocType

Runs on a bench site (bench run-tests --app clinic_scheduling).
Tests record invariants enforced on save.
"""

import asyncio

import frappe
from frappe.tests.utils import FrappeTestCase
from frappe.utils import add_to_date, now_datetime

from clinic_scheduling.clinic_scheduling.scheduling.models import AppointmentStatus
from clinic_scheduling.clinic_scheduling.stores.frappe_store import FrappeAppointmentStore
from clinic_scheduling.clinic_scheduling.tests.fakes import make_appointment, utc


class TestMedicalAppointment(FrappeTestCase):
	"""Tests for Medical Appointment DocType."""

	def setUp(self):
		"""Set up test data before each test."""
		if not frappe.db.exists("Doctor Schedule", "Test Doctor Appointment"):
			frappe.get_doc({
				"doctype": "Doctor Schedule",
				"name": "Test Doctor Appointment",
				"doctor_name": "Dra. Test",
				"timezone": "America/Santiago",
				"default_duration_minutes": 60,
				"is_active": 1,
			}).insert(ignore_permissions=True, set_name="Test Doctor Appointment")

		frappe.db.commit()

	def _appointment(self, **fields):
		values = {
			"doctype": "Medical Appointment",
			"doctor": "Test Doctor Appointment",
			"date_time_utc": add_to_date(now_datetime(), days=2),
			"duration_minutes": 60,
			"appointment_type": "presential",
			"status": "scheduled",
		}
		values.update(fields)
		return frappe.get_doc(values)

	def test_duration_must_be_positive(self):
		"""Test that a zero duration is rejected."""
		with self.assertRaises(frappe.ValidationError):
			self._appointment(duration_minutes=0).insert(ignore_permissions=True)

	def test_duration_cap(self):
		"""Test that durations above the configured cap are rejected."""
		with self.assertRaises(frappe.ValidationError):
			self._appointment(duration_minutes=481).insert(ignore_permissions=True)

	def test_terminal_status_is_final(self):
		"""Test that a cancelled appointment cannot go back to scheduled."""
		appointment = self._appointment()
		appointment.insert(ignore_permissions=True)

		appointment.status = "cancelled"
		appointment.save(ignore_permissions=True)

		appointment.status = "scheduled"
		with self.assertRaises(frappe.ValidationError):
			appointment.save(ignore_permissions=True)

	def test_complete_requires_confirmed(self):
		"""Test that scheduled -> completed is not a valid transition."""
		appointment = self._appointment()
		appointment.insert(ignore_permissions=True)

		appointment.status = "completed"
		with self.assertRaises(frappe.ValidationError):
			appointment.save(ignore_permissions=True)

	def test_external_event_unique_per_doctor(self):
		"""Test that the same external event cannot be linked twice."""
		self._appointment(external_event_id="evt-unique-1").insert(ignore_permissions=True)

		with self.assertRaises(frappe.ValidationError):
			self._appointment(external_event_id="evt-unique-1").insert(ignore_permissions=True)

	def _cancel_through_store(self, name, penalty):
		store = FrappeAppointmentStore()
		appointment = make_appointment(
			utc(2030, 1, 8, 14),
			doctor_id="Test Doctor Appointment",
			appointment_id=name,
			patient_id=None,
		)
		try:
			saved = asyncio.run(store.insert(appointment))
			self.assertIsNone(saved.cancellation_penalty)

			cancelled = saved.model_copy(update={
				"status": AppointmentStatus.CANCELLED,
				"cancellation_penalty": penalty,
			})
			return asyncio.run(store.update(cancelled))
		finally:
			frappe.delete_doc("Medical Appointment", name, force=True, ignore_missing=True)
			frappe.db.commit()

	def test_no_penalty_reads_back_as_none(self):
		"""Test that a cancellation outside the notice window keeps no penalty."""
		result = self._cancel_through_store("TEST-PENALTY-NONE", None)
		self.assertIsNone(result.cancellation_penalty)

	def test_zero_penalty_is_kept(self):
		"""Test that a 0% penalty inside the notice window is not confused with none."""
		result = self._cancel_through_store("TEST-PENALTY-ZERO", 0.0)
		self.assertEqual(result.cancellation_penalty, 0.0)

	def tearDown(self):
		frappe.db.rollback()
