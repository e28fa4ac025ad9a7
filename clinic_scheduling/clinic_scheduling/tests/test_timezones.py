"""
Tests for scheduling/timezones.py

Tests local <-> UTC conversion and unsupported zone substitution.
"""

import unittest
from datetime import datetime

import pytz

from clinic_scheduling.clinic_scheduling.scheduling.service import SchedulingService
from clinic_scheduling.clinic_scheduling.scheduling.settings import SchedulingSettings
from clinic_scheduling.clinic_scheduling.scheduling.timezones import TimezoneNormalizer
from clinic_scheduling.clinic_scheduling.tests.fakes import (
	FakeDoctorDirectory,
	FakePatientDirectory,
	InMemoryAppointmentStore,
)


class TestTimezoneNormalizer(unittest.TestCase):
	"""Tests for TimezoneNormalizer."""

	def setUp(self):
		self.normalizer = TimezoneNormalizer(SchedulingSettings())

	def test_naive_local_to_utc(self):
		"""Test that a naive wall-clock time is read in the given zone."""
		# Junio: Santiago en horario estándar (UTC-4)
		result = self.normalizer.to_utc(datetime(2026, 6, 9, 16, 0), "America/Santiago")

		self.assertEqual(result, datetime(2026, 6, 9, 20, 0, tzinfo=pytz.UTC))
		self.assertEqual(result.utcoffset().total_seconds(), 0)

	def test_summer_offset(self):
		"""Test that daylight saving time is applied in the southern summer."""
		result = self.normalizer.to_utc(datetime(2026, 1, 13, 9, 0), "America/Santiago")
		self.assertEqual(result, datetime(2026, 1, 13, 12, 0, tzinfo=pytz.UTC))

	def test_aware_input_converted_directly(self):
		"""Test that an aware instant ignores the zone argument."""
		madrid = pytz.timezone("Europe/Madrid").localize(datetime(2026, 6, 9, 10, 0))
		result = self.normalizer.to_utc(madrid, "America/Santiago")
		self.assertEqual(result, datetime(2026, 6, 9, 8, 0, tzinfo=pytz.UTC))

	def test_seconds_precision(self):
		"""Test that microseconds are dropped."""
		result = self.normalizer.to_utc(datetime(2026, 6, 9, 16, 0, 5, 999999), "UTC")
		self.assertEqual(result.microsecond, 0)
		self.assertEqual(result.second, 5)

	def test_round_trip(self):
		"""Test that to_zone(to_utc(x, z), z) gives back the same wall clock."""
		local = datetime(2026, 3, 15, 8, 45, 30)
		for zone in self.normalizer.supported_zones():
			back = self.normalizer.to_zone(self.normalizer.to_utc(local, zone), zone)
			self.assertEqual(back.replace(tzinfo=None), local, zone)

	def test_to_zone_naive_is_utc(self):
		"""Test that a naive instant passed to to_zone is treated as UTC."""
		result = self.normalizer.to_zone(datetime(2026, 6, 9, 20, 0), "America/Santiago")
		self.assertEqual(result.hour, 16)
		self.assertEqual(result.tzinfo.zone, "America/Santiago")

	def test_unsupported_zone_substituted(self):
		"""Test that an unsupported zone falls back to the default and is reported."""
		with self.assertLogs("clinic_scheduling.clinic_scheduling.scheduling.timezones", level="WARNING"):
			resolution = self.normalizer.resolve_zone("Asia/Tokyo")

		self.assertEqual(resolution.name, "America/Santiago")
		self.assertTrue(resolution.substituted)

	def test_supported_zone_not_substituted(self):
		resolution = self.normalizer.resolve_zone("Europe/London")
		self.assertEqual(resolution.name, "Europe/London")
		self.assertFalse(resolution.substituted)

	def test_missing_zone_substituted(self):
		self.assertTrue(self.normalizer.resolve_zone(None).substituted)
		self.assertTrue(self.normalizer.resolve_zone("").substituted)

	def test_conversion_with_unsupported_zone_uses_default(self):
		"""Test that conversions never fail on an unsupported zone."""
		result = self.normalizer.to_utc(datetime(2026, 6, 9, 16, 0), "Mars/Olympus")
		self.assertEqual(result, datetime(2026, 6, 9, 20, 0, tzinfo=pytz.UTC))

	def test_format_for_zone(self):
		instant = datetime(2026, 6, 9, 20, 0, tzinfo=pytz.UTC)
		self.assertEqual(self.normalizer.format_for_zone(instant, "America/Santiago"), "2026-06-09 16:00")
		self.assertEqual(self.normalizer.format_for_zone(instant, "UTC", "%H:%M"), "20:00")

	def test_utc_offset_minutes(self):
		at = datetime(2026, 6, 9, 12, 0, tzinfo=pytz.UTC)
		self.assertEqual(self.normalizer.utc_offset_minutes("America/Santiago", at), -240)
		self.assertEqual(self.normalizer.utc_offset_minutes("Europe/Madrid", at), 120)
		self.assertEqual(self.normalizer.utc_offset_minutes("UTC", at), 0)

	def test_custom_supported_set(self):
		"""Test that the supported set comes from settings."""
		normalizer = TimezoneNormalizer(SchedulingSettings(
			default_timezone="UTC",
			supported_timezones=["UTC", "Europe/Madrid"],
		))
		self.assertFalse(normalizer.is_supported("America/Santiago"))
		self.assertEqual(normalizer.resolve_zone("America/Santiago").name, "UTC")


class TestSharedNormalizer(unittest.TestCase):
	"""Tests for injecting one TimezoneNormalizer into SchedulingService."""

	def test_components_share_injected_normalizer(self):
		settings = SchedulingSettings(default_timezone="Europe/Madrid")
		normalizer = TimezoneNormalizer(settings)
		service = SchedulingService(
			store=InMemoryAppointmentStore(),
			doctors=FakeDoctorDirectory(),
			patients=FakePatientDirectory(),
			settings=settings,
			normalizer=normalizer,
		)

		self.assertIs(service.normalizer, normalizer)
		self.assertIs(service.checker.normalizer, normalizer)
		self.assertIs(service.reconciler.normalizer, normalizer)
		self.assertIs(service.lifecycle.normalizer, normalizer)
