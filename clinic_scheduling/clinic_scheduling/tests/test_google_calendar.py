"""
Tests for calendar_gateways/google_calendar.py and calendar_gateways/base.py

HTTP traffic goes through httpx.MockTransport; nothing leaves the process.
"""

import asyncio
import json
import unittest

import httpx

from clinic_scheduling.clinic_scheduling.calendar_gateways.base import (
	CalendarEventDraft,
	CalendarGatewayError,
	call_gateway,
)
from clinic_scheduling.clinic_scheduling.calendar_gateways.factory import get_gateway
from clinic_scheduling.clinic_scheduling.calendar_gateways.google_calendar import GoogleCalendarGateway
from clinic_scheduling.clinic_scheduling.scheduling.exceptions import ExternalServiceError, ValidationError
from clinic_scheduling.clinic_scheduling.scheduling.models import CalendarCredential, EventStatus, EventTransparency
from clinic_scheduling.clinic_scheduling.tests.fakes import utc


CREDENTIAL = CalendarCredential(calendar_id="doc-1@clinic.test", access_token="secret-token")


def event_json(event_id="evt-1", **extra):
	payload = {
		"id": event_id,
		"summary": "Consulta con Ana Pérez",
		"start": {"dateTime": "2026-06-09T10:00:00-04:00", "timeZone": "America/Santiago"},
		"end": {"dateTime": "2026-06-09T11:00:00-04:00", "timeZone": "America/Santiago"},
		"status": "confirmed",
	}
	payload.update(extra)
	return payload


class TestGoogleCalendarRequests(unittest.IsolatedAsyncioTestCase):
	"""Tests for the HTTP side of GoogleCalendarGateway."""

	def setUp(self):
		self.requests = []
		self.responses = []

	def handler(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		return self.responses.pop(0)

	async def asyncSetUp(self):
		self.client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
		self.gateway = GoogleCalendarGateway(http_client=self.client)

	async def asyncTearDown(self):
		await self.gateway.aclose()
		await self.client.aclose()

	async def test_create_event(self):
		self.responses.append(httpx.Response(200, json=event_json()))
		draft = CalendarEventDraft(
			title="Consulta con Ana Pérez",
			description="Primera consulta",
			start=utc(2026, 6, 9, 14),
			end=utc(2026, 6, 9, 15),
			timezone="America/Santiago",
			attendee_emails=["ana@example.com"],
		)

		event = await self.gateway.create_event(CREDENTIAL, draft)

		request = self.requests[0]
		self.assertEqual(request.method, "POST")
		self.assertTrue(str(request.url).startswith("https://www.googleapis.com/calendar/v3/calendars/"))
		self.assertTrue(request.url.path.endswith("/events"))
		self.assertEqual(request.headers["Authorization"], "Bearer secret-token")

		body = json.loads(request.content)
		self.assertEqual(body["summary"], "Consulta con Ana Pérez")
		self.assertEqual(body["start"], {"dateTime": "2026-06-09T14:00:00Z", "timeZone": "America/Santiago"})
		self.assertEqual(body["reminders"]["useDefault"], False)
		self.assertEqual(
			body["reminders"]["overrides"],
			[{"method": "popup", "minutes": 1440}, {"method": "popup", "minutes": 120}],
		)
		self.assertEqual(body["attendees"], [{"email": "ana@example.com"}])

		self.assertEqual(event.id, "evt-1")
		self.assertEqual(event.start, utc(2026, 6, 9, 14))

	async def test_update_uses_patch(self):
		self.responses.append(httpx.Response(200, json=event_json()))
		draft = CalendarEventDraft(
			title="Consulta",
			start=utc(2026, 6, 9, 14),
			end=utc(2026, 6, 9, 15),
			timezone="UTC",
		)

		await self.gateway.update_event(CREDENTIAL, "evt-1", draft)

		self.assertEqual(self.requests[0].method, "PATCH")
		self.assertTrue(self.requests[0].url.path.endswith("/events/evt-1"))
		self.assertNotIn("attendees", json.loads(self.requests[0].content))

	async def test_list_events_paginates(self):
		self.responses.extend([
			httpx.Response(200, json={"items": [event_json("evt-1")], "nextPageToken": "page-2"}),
			httpx.Response(200, json={"items": [event_json("evt-2")]}),
		])

		items = await self.gateway.list_events(CREDENTIAL, utc(2026, 6, 1), utc(2026, 7, 1))

		self.assertEqual([item["id"] for item in items], ["evt-1", "evt-2"])
		first, second = self.requests
		self.assertEqual(first.url.params["timeMin"], "2026-06-01T00:00:00Z")
		self.assertEqual(first.url.params["singleEvents"], "true")
		self.assertNotIn("pageToken", first.url.params)
		self.assertEqual(second.url.params["pageToken"], "page-2")

	async def test_free_busy_skips_malformed(self):
		self.responses.append(httpx.Response(200, json={"items": [event_json("evt-1"), {"id": "evt-bad"}]}))

		events = await self.gateway.free_busy(CREDENTIAL, utc(2026, 6, 1), utc(2026, 7, 1))

		self.assertEqual([event.id for event in events], ["evt-1"])

	async def test_free_busy_all_day_in_doctor_zone(self):
		self.responses.append(httpx.Response(200, json={"items": [
			{"id": "evt-allday", "start": {"date": "2026-06-10"}, "end": {"date": "2026-06-11"}},
		]}))

		events = await self.gateway.free_busy(
			CREDENTIAL, utc(2026, 6, 1), utc(2026, 7, 1), default_zone="America/Santiago"
		)

		# 23:30 local del día anterior sigue libre; 00:30 local ya está bloqueado
		self.assertFalse(events[0].overlaps(utc(2026, 6, 10, 3, 30), utc(2026, 6, 10, 4)))
		self.assertTrue(events[0].overlaps(utc(2026, 6, 10, 4, 30), utc(2026, 6, 10, 5)))

	async def test_delete_missing_event_is_ok(self):
		self.responses.extend([httpx.Response(404), httpx.Response(410), httpx.Response(204)])

		for _ in range(3):
			await self.gateway.delete_event(CREDENTIAL, "evt-1")

		self.assertEqual([r.method for r in self.requests], ["DELETE"] * 3)

	async def test_api_error(self):
		self.responses.append(httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}}))

		with self.assertRaises(CalendarGatewayError) as ctx:
			await self.gateway.list_events(CREDENTIAL, utc(2026, 6, 1), utc(2026, 7, 1))

		self.assertEqual(ctx.exception.status_code, 401)
		self.assertIn("Invalid Credentials", str(ctx.exception))

	async def test_network_error(self):
		def fail(request):
			raise httpx.ConnectError("connection refused", request=request)

		async with httpx.AsyncClient(transport=httpx.MockTransport(fail)) as client:
			gateway = GoogleCalendarGateway(http_client=client)
			with self.assertRaises(CalendarGatewayError):
				await gateway.list_events(CREDENTIAL, utc(2026, 6, 1), utc(2026, 7, 1))

	async def test_unusable_created_event(self):
		self.responses.append(httpx.Response(200, json={"kind": "calendar#event"}))
		draft = CalendarEventDraft(title="Consulta", start=utc(2026, 6, 9, 14), end=utc(2026, 6, 9, 15), timezone="UTC")

		with self.assertRaises(CalendarGatewayError):
			await self.gateway.create_event(CREDENTIAL, draft)


class TestParseEvent(unittest.TestCase):
	"""Tests for GoogleCalendarGateway.parse_event."""

	def setUp(self):
		self.gateway = GoogleCalendarGateway()

	def tearDown(self):
		asyncio.run(self.gateway.aclose())

	def test_normalized_to_utc(self):
		event = self.gateway.parse_event(event_json(attendees=[
			{"email": "ana@example.com", "displayName": "Ana"},
			{"displayName": "sin correo"},
		]))

		self.assertEqual(event.start, utc(2026, 6, 9, 14))
		self.assertEqual(event.duration_minutes, 60)
		self.assertEqual(event.start_timezone, "America/Santiago")
		self.assertEqual([a.email for a in event.attendees], ["ana@example.com"])
		self.assertTrue(event.blocks_time)

	def test_date_fallback(self):
		"""Test that all-day events fall back to the date field."""
		event = self.gateway.parse_event({
			"id": "evt-allday",
			"start": {"date": "2026-06-10"},
			"end": {"date": "2026-06-11"},
		})

		self.assertEqual(event.start, utc(2026, 6, 10))
		self.assertEqual(event.duration_minutes, 24 * 60)
		self.assertEqual(event.title, "Sin título")

	def test_date_uses_default_zone(self):
		"""Test that an all-day event without timeZone starts at local midnight."""
		event = self.gateway.parse_event(
			{"id": "evt-allday", "start": {"date": "2026-06-10"}, "end": {"date": "2026-06-11"}},
			default_zone="America/Santiago",
		)

		self.assertEqual(event.start, utc(2026, 6, 10, 4))
		self.assertEqual(event.end, utc(2026, 6, 11, 4))
		self.assertIsNone(event.start_timezone)

	def test_local_date_time_uses_declared_zone(self):
		event = self.gateway.parse_event(event_json(
			start={"dateTime": "2026-06-09T10:00:00", "timeZone": "America/Santiago"},
			end={"dateTime": "2026-06-09T10:30:00", "timeZone": "America/Santiago"},
		))
		self.assertEqual(event.start, utc(2026, 6, 9, 14))

	def test_status_and_transparency(self):
		event = self.gateway.parse_event(event_json(status="tentative", transparency="transparent"))
		self.assertEqual(event.status, EventStatus.TENTATIVE)
		self.assertEqual(event.transparency, EventTransparency.TRANSPARENT)
		self.assertFalse(event.blocks_time)

	def test_malformed(self):
		for payload in (
			[],
			{"summary": "sin id"},
			event_json(start={"dateTime": "ayer"}),
			event_json(start={}),
			event_json(start={"dateTime": "2026-06-09T10:00:00", "timeZone": "Mars/Base"}),
			event_json(end={"dateTime": "2026-06-09T09:00:00-04:00"}),
			event_json(status="deleted"),
		):
			with self.assertRaises(ValidationError, msg=repr(payload)):
				self.gateway.parse_event(payload)


class TestCallGateway(unittest.IsolatedAsyncioTestCase):
	"""Tests for call_gateway."""

	async def test_passes_result(self):
		async def ok():
			return ["evt-1"]

		self.assertEqual(await call_gateway(ok(), 1, "list_events"), ["evt-1"])

	async def test_gateway_error_mapped(self):
		async def broken():
			raise CalendarGatewayError("boom", status_code=500)

		with self.assertRaises(ExternalServiceError) as ctx:
			await call_gateway(broken(), 1, "create_event")
		self.assertEqual(ctx.exception.details["status_code"], 500)

	async def test_timeout_mapped(self):
		async def slow():
			await asyncio.sleep(1)

		with self.assertRaises(ExternalServiceError) as ctx:
			await call_gateway(slow(), 0.01, "list_events")
		self.assertIn("timed out", ctx.exception.message)


class TestFactory(unittest.TestCase):
	"""Tests for get_gateway."""

	def test_unsupported_provider(self):
		with self.assertRaises(ValueError):
			get_gateway("outlook")
