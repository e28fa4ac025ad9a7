"""
Tests for scheduling/availability.py

Tests the three availability tiers: working hours, local store and
external calendar (with its failure policy).
"""

import unittest
from datetime import datetime, time, timedelta

from clinic_scheduling.clinic_scheduling.calendar_gateways.base import CalendarGatewayError
from clinic_scheduling.clinic_scheduling.scheduling.availability import (
	TIER_EXTERNAL_CALENDAR,
	TIER_LOCAL_STORE,
	TIER_WORKING_HOURS,
	AvailabilityChecker,
)
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import ConflictError, NotFoundError, ValidationError
from clinic_scheduling.clinic_scheduling.scheduling.models import AppointmentStatus
from clinic_scheduling.clinic_scheduling.scheduling.settings import SchedulingSettings
from clinic_scheduling.clinic_scheduling.tests.fakes import (
	TUESDAY,
	FakeDoctorDirectory,
	FakeGateway,
	InMemoryAppointmentStore,
	event_payload,
	make_appointment,
	make_doctor,
	make_service,
	utc,
	working_hours,
)


def build_checker(doctors, appointments=(), gateway=None, **settings):
	return AvailabilityChecker(
		InMemoryAppointmentStore(appointments),
		FakeDoctorDirectory(*doctors),
		gateway,
		settings=SchedulingSettings(**settings),
	)


class TestWorkingHoursTier(unittest.IsolatedAsyncioTestCase):
	"""Tests for the working-hours tier."""

	async def test_santiago_tuesday_boundary(self):
		"""Test 09:00-17:00 Santiago: 16:30 for 60 min is rejected, 16:00 is accepted."""
		checker = build_checker([make_doctor()])
		normalizer = checker.normalizer

		late = normalizer.to_utc(datetime.combine(TUESDAY, time(16, 30)), "America/Santiago")
		on_time = normalizer.to_utc(datetime.combine(TUESDAY, time(16, 0)), "America/Santiago")

		report = await checker.evaluate("DOC-1", late, 60)
		self.assertFalse(report.available)
		self.assertEqual(report.tier, TIER_WORKING_HOURS)

		self.assertTrue(await checker.is_available("DOC-1", on_time, 60))

	async def test_exact_window_available(self):
		"""Test that a candidate exactly equal to the working window is available."""
		checker = build_checker([make_doctor(timezone="UTC")])
		start = utc(TUESDAY.year, TUESDAY.month, TUESDAY.day, 9)

		self.assertTrue(await checker.is_available("DOC-1", start, 480))
		self.assertFalse(await checker.is_available("DOC-1", start + timedelta(minutes=1), 480))

	async def test_before_start_rejected(self):
		checker = build_checker([make_doctor(timezone="UTC")])
		start = utc(TUESDAY.year, TUESDAY.month, TUESDAY.day, 8, 30)

		report = await checker.evaluate("DOC-1", start, 60)

		self.assertEqual(report.tier, TIER_WORKING_HOURS)

	async def test_unavailable_day_rejected(self):
		"""Test that Sunday (closed) is rejected."""
		checker = build_checker([make_doctor(timezone="UTC")])
		sunday = TUESDAY - timedelta(days=2)

		report = await checker.evaluate("DOC-1", utc(sunday.year, sunday.month, sunday.day, 10), 60)

		self.assertFalse(report.available)
		self.assertIn("sunday", report.reason)

	async def test_weekday_taken_in_doctor_zone(self):
		"""Test that the weekday is derived from the doctor's local time, not UTC."""
		hours = working_hours(start=time(20, 0), end=time(23, 0))
		checker = build_checker([make_doctor(working_hours=hours)])

		# Viernes 22:00 en Santiago = sábado 02:00 UTC
		friday_night = utc(TUESDAY.year, TUESDAY.month, TUESDAY.day + 4, 2)

		self.assertTrue(await checker.is_available("DOC-1", friday_night, 60))


class TestLocalStoreTier(unittest.IsolatedAsyncioTestCase):
	"""Tests for the local-store tier."""

	async def test_overlap_rejected(self):
		"""Test 10:00-11:00 UTC booked; 10:30-11:30 UTC is rejected by the store tier."""
		booked = make_appointment(utc(2026, 6, 9, 10), appointment_id="APT-1")
		checker = build_checker([make_doctor(timezone="UTC")], [booked])

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 10, 30), 60)

		self.assertFalse(report.available)
		self.assertEqual(report.tier, TIER_LOCAL_STORE)
		self.assertEqual(report.conflicting_appointments, ["APT-1"])

	async def test_back_to_back_available(self):
		booked = make_appointment(utc(2026, 6, 9, 10))
		checker = build_checker([make_doctor(timezone="UTC")], [booked])

		self.assertTrue(await checker.is_available("DOC-1", utc(2026, 6, 9, 11), 60))

	async def test_cancelled_does_not_block(self):
		booked = make_appointment(utc(2026, 6, 9, 10), status=AppointmentStatus.CANCELLED)
		checker = build_checker([make_doctor(timezone="UTC")], [booked])

		self.assertTrue(await checker.is_available("DOC-1", utc(2026, 6, 9, 10), 60))

	async def test_reschedule_excludes_itself(self):
		booked = make_appointment(utc(2026, 6, 9, 10), appointment_id="APT-1")
		checker = build_checker([make_doctor(timezone="UTC")], [booked])

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 10, 30), 60, exclude_appointment_id="APT-1")

		self.assertTrue(report.available)

	async def test_ensure_available_raises_with_tier(self):
		booked = make_appointment(utc(2026, 6, 9, 10))
		checker = build_checker([make_doctor(timezone="UTC")], [booked])

		with self.assertRaises(ConflictError) as ctx:
			await checker.ensure_available("DOC-1", utc(2026, 6, 9, 10), 60)

		self.assertEqual(ctx.exception.tier, TIER_LOCAL_STORE)


class TestExternalCalendarTier(unittest.IsolatedAsyncioTestCase):
	"""Tests for the external-calendar tier."""

	async def test_skipped_without_credential(self):
		"""Test that a doctor without calendar skips the tier even with busy events."""
		gateway = FakeGateway([event_payload("busy", utc(2026, 6, 9, 10), utc(2026, 6, 9, 12))])
		checker = build_checker([make_doctor(timezone="UTC")], gateway=gateway)

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 10), 60)

		self.assertTrue(report.available)
		self.assertTrue(report.external_skipped)
		self.assertEqual(gateway.calls, [])

	async def test_no_credential_still_rejects_hard_tiers(self):
		"""Test that skipping the external tier never overrides tiers 1 and 2."""
		booked = make_appointment(utc(2026, 6, 9, 10))
		checker = build_checker([make_doctor(timezone="UTC")], [booked], gateway=FakeGateway())

		self.assertFalse(await checker.is_available("DOC-1", utc(2026, 6, 9, 10), 60))
		self.assertFalse(await checker.is_available("DOC-1", utc(2026, 6, 9, 20), 60))

	async def test_busy_event_rejects(self):
		gateway = FakeGateway([event_payload("busy", utc(2026, 6, 9, 10), utc(2026, 6, 9, 12))])
		checker = build_checker([make_doctor(timezone="UTC", calendar=True)], gateway=gateway)

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 11), 30)

		self.assertFalse(report.available)
		self.assertEqual(report.tier, TIER_EXTERNAL_CALENDAR)
		self.assertEqual(report.conflicting_events, ["busy"])

	async def test_transparent_and_cancelled_events_ignored(self):
		gateway = FakeGateway([
			event_payload("free", utc(2026, 6, 9, 10), utc(2026, 6, 9, 12), transparency="transparent"),
			event_payload("gone", utc(2026, 6, 9, 10), utc(2026, 6, 9, 12), status="cancelled"),
		])
		checker = build_checker([make_doctor(timezone="UTC", calendar=True)], gateway=gateway)

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 10), 60)

		self.assertTrue(report.available)
		self.assertTrue(report.external_checked)

	async def test_gateway_failure_fails_open(self):
		gateway = FakeGateway()
		gateway.fail_with = CalendarGatewayError("401 invalid credentials", status_code=401)
		checker = build_checker([make_doctor(timezone="UTC", calendar=True)], gateway=gateway)

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 10), 60)

		self.assertTrue(report.available)
		self.assertIn("401", report.external_error)

	async def test_gateway_failure_fails_closed(self):
		gateway = FakeGateway()
		gateway.fail_with = CalendarGatewayError("unreachable")
		checker = build_checker(
			[make_doctor(timezone="UTC", calendar=True)],
			gateway=gateway,
			external_tier_policy="fail_closed",
		)

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 10), 60)

		self.assertFalse(report.available)
		self.assertEqual(report.tier, TIER_EXTERNAL_CALENDAR)

	async def test_gateway_timeout_follows_policy(self):
		gateway = FakeGateway()
		gateway.delay = 1
		checker = build_checker(
			[make_doctor(timezone="UTC", calendar=True)],
			gateway=gateway,
			gateway_timeout_seconds=0.05,
		)

		report = await checker.evaluate("DOC-1", utc(2026, 6, 9, 10), 60)

		self.assertTrue(report.available)
		self.assertIn("timed out", report.external_error)


class TestEvaluateInput(unittest.IsolatedAsyncioTestCase):
	"""Tests for input handling of evaluate."""

	async def test_unknown_doctor(self):
		checker = build_checker([])
		with self.assertRaises(NotFoundError):
			await checker.evaluate("DOC-X", utc(2026, 6, 9, 10), 60)

	async def test_naive_candidate_rejected(self):
		checker = build_checker([make_doctor()])
		with self.assertRaises(ValidationError):
			await checker.evaluate("DOC-1", datetime(2026, 6, 9, 10), 60)

	async def test_invalid_duration(self):
		checker = build_checker([make_doctor()])
		with self.assertRaises(ValidationError):
			await checker.evaluate("DOC-1", utc(2026, 6, 9, 10), 0)


class TestServiceAvailability(unittest.IsolatedAsyncioTestCase):
	"""Tests for the availability operations of SchedulingService."""

	def setUp(self):
		# Martes 10:00 en Santiago
		self.service = make_service(
			doctors=[make_doctor()],
			appointments=[make_appointment(utc(2026, 6, 9, 14), appointment_id="APT-1")],
		)

	async def test_check_availability(self):
		self.assertFalse(await self.service.check_availability("DOC-1", utc(2026, 6, 9, 14, 30), 30))
		self.assertTrue(await self.service.check_availability("DOC-1", utc(2026, 6, 9, 15), 30))

	async def test_validate_appointment_reports_tier(self):
		report = await self.service.validate_appointment("DOC-1", utc(2026, 6, 9, 14, 30), 30)
		self.assertEqual(report.tier, TIER_LOCAL_STORE)
		self.assertEqual(report.conflicting_appointments, ["APT-1"])

		report = await self.service.validate_appointment(
			"DOC-1", utc(2026, 6, 9, 14, 30), 30, exclude_appointment_id="APT-1"
		)
		self.assertTrue(report.available)

	async def test_slots_through_service(self):
		slots = await self.service.get_available_slots("DOC-1", TUESDAY, 60)
		self.assertEqual(len(slots), 15)
		self.assertEqual(len([slot for slot in slots if not slot.available]), 3)

		week = await self.service.get_doctor_availability("DOC-1", TUESDAY, TUESDAY)
		self.assertEqual(week, slots)
