"""
Google Calendar Gateway

Implementation of CalendarGateway over the Google Calendar v3 REST API.
The delegated access token comes in the CalendarCredential; obtaining and
refreshing it happens outside this module.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import pydantic
import pytz

from ..scheduling.exceptions import ValidationError
from ..scheduling.models import CalendarCredential, ExternalCalendarEvent
from .base import CalendarEventDraft, CalendarGateway, CalendarGatewayError


logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
MAX_RESULTS_PER_PAGE = 250
UNTITLED_EVENT = "Sin título"


def _rfc3339(value: datetime) -> str:
	return value.astimezone(pytz.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_boundary(payload: Any, field_name: str, default_zone: Optional[str] = None) -> Dict[str, Any]:
	"""
	Normaliza start/end de Google a {"instant": datetime aware, "timezone": str}.

	Usa dateTime; si no existe, cae a date (evento de día completo, medianoche
	en la zona declarada, si no en default_zone, si no en UTC).
	"""
	if not isinstance(payload, dict):
		raise ValidationError(f"event {field_name} is missing", field=field_name)

	zone = payload.get("timeZone") or None
	effective = zone or default_zone
	try:
		tz = pytz.timezone(effective) if effective else pytz.UTC
	except pytz.UnknownTimeZoneError:
		raise ValidationError(f"event {field_name} has unknown timeZone {effective!r}", field=field_name)

	raw = payload.get("dateTime")
	if raw:
		raw = str(raw).strip()
		if raw.endswith("Z"):
			raw = f"{raw[:-1]}+00:00"
		try:
			instant = datetime.fromisoformat(raw)
		except ValueError:
			raise ValidationError(f"event {field_name} has invalid dateTime {raw!r}", field=field_name)
		if instant.tzinfo is None:
			instant = tz.localize(instant, is_dst=False)
		return {"instant": instant, "timezone": zone}

	raw = payload.get("date")
	if raw:
		try:
			day = date.fromisoformat(str(raw).strip())
		except ValueError:
			raise ValidationError(f"event {field_name} has invalid date {raw!r}", field=field_name)
		instant = tz.localize(datetime(day.year, day.month, day.day), is_dst=False)
		return {"instant": instant, "timezone": zone}

	raise ValidationError(f"event {field_name} has neither dateTime nor date", field=field_name)


def _error_message(response: httpx.Response) -> str:
	try:
		payload = response.json()
	except ValueError:
		return response.text[:200] or response.reason_phrase
	if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
		return str(payload["error"].get("message") or response.reason_phrase)
	return response.reason_phrase


class GoogleCalendarGateway(CalendarGateway):
	"""Gateway para Google Calendar."""

	provider = "google_calendar"

	def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0):
		self._owns_client = http_client is None
		self._client = http_client or httpx.AsyncClient(timeout=timeout)

	async def aclose(self) -> None:
		if self._owns_client:
			await self._client.aclose()

	async def _request(
		self,
		method: str,
		path: str,
		credential: CalendarCredential,
		params: Optional[Dict[str, Any]] = None,
		json_body: Optional[Dict[str, Any]] = None,
		allow_not_found: bool = False,
	) -> Dict[str, Any]:
		headers = {"Authorization": f"Bearer {credential.access_token}"}
		try:
			response = await self._client.request(
				method,
				f"{GOOGLE_CALENDAR_API}{path}",
				params=params,
				json=json_body,
				headers=headers,
			)
		except httpx.HTTPError as e:
			raise CalendarGatewayError(f"Google Calendar request failed: {e}") from e

		if allow_not_found and response.status_code in (404, 410):
			return {}

		if response.status_code >= 400:
			raise CalendarGatewayError(
				f"Google Calendar API error {response.status_code}: {_error_message(response)}",
				status_code=response.status_code,
			)

		if response.status_code == 204 or not response.content:
			return {}

		try:
			payload = response.json()
		except ValueError as e:
			raise CalendarGatewayError("Google Calendar API returned invalid JSON") from e

		if not isinstance(payload, dict):
			raise CalendarGatewayError("Google Calendar API returned an unexpected payload")
		return payload

	def _events_path(self, credential: CalendarCredential, event_id: Optional[str] = None) -> str:
		path = f"/calendars/{quote(credential.calendar_id, safe='')}/events"
		if event_id:
			path = f"{path}/{quote(event_id, safe='')}"
		return path

	def build_event_body(self, draft: CalendarEventDraft) -> Dict[str, Any]:
		body = {
			"summary": draft.title,
			"description": draft.description,
			"start": {"dateTime": _rfc3339(draft.start), "timeZone": draft.timezone},
			"end": {"dateTime": _rfc3339(draft.end), "timeZone": draft.timezone},
			"reminders": {
				"useDefault": False,
				"overrides": [
					{"method": "popup", "minutes": minutes}
					for minutes in draft.reminder_minutes
				],
			},
		}
		if draft.attendee_emails:
			body["attendees"] = [{"email": email} for email in draft.attendee_emails]
		return body

	async def create_event(
		self,
		credential: CalendarCredential,
		draft: CalendarEventDraft,
	) -> ExternalCalendarEvent:
		payload = await self._request(
			"POST",
			self._events_path(credential),
			credential,
			json_body=self.build_event_body(draft),
		)
		return self._parse_response(payload)

	async def update_event(
		self,
		credential: CalendarCredential,
		event_id: str,
		draft: CalendarEventDraft,
	) -> ExternalCalendarEvent:
		payload = await self._request(
			"PATCH",
			self._events_path(credential, event_id),
			credential,
			json_body=self.build_event_body(draft),
		)
		return self._parse_response(payload)

	async def delete_event(self, credential: CalendarCredential, event_id: str) -> None:
		# 404/410: el evento ya no existe
		await self._request(
			"DELETE",
			self._events_path(credential, event_id),
			credential,
			allow_not_found=True,
		)

	async def list_events(
		self,
		credential: CalendarCredential,
		time_min: datetime,
		time_max: datetime,
	) -> List[Dict[str, Any]]:
		params = {
			"timeMin": _rfc3339(time_min),
			"timeMax": _rfc3339(time_max),
			"singleEvents": "true",
			"showDeleted": "false",
			"orderBy": "startTime",
			"maxResults": MAX_RESULTS_PER_PAGE,
		}

		items: List[Dict[str, Any]] = []
		while True:
			payload = await self._request("GET", self._events_path(credential), credential, params=params)

			page_items = payload.get("items") or []
			if not isinstance(page_items, list):
				raise CalendarGatewayError("Google Calendar events response has no items list")
			items.extend(page_items)

			next_page = payload.get("nextPageToken")
			if not next_page:
				break
			params = {**params, "pageToken": next_page}

		return items

	def parse_event(self, payload: Dict[str, Any], default_zone: Optional[str] = None) -> ExternalCalendarEvent:
		if not isinstance(payload, dict):
			raise ValidationError("calendar event payload must be an object")

		event_id = payload.get("id")
		if not event_id:
			raise ValidationError("calendar event has no id")

		start = _parse_boundary(payload.get("start"), "start", default_zone)
		end = _parse_boundary(payload.get("end"), "end", default_zone)

		attendees = [
			{"email": entry["email"], "display_name": entry.get("displayName")}
			for entry in payload.get("attendees") or []
			if isinstance(entry, dict) and entry.get("email")
		]

		try:
			return ExternalCalendarEvent(
				id=str(event_id),
				title=payload.get("summary") or UNTITLED_EVENT,
				description=payload.get("description"),
				start=start["instant"],
				end=end["instant"],
				start_timezone=start["timezone"],
				end_timezone=end["timezone"],
				attendees=attendees,
				status=payload.get("status") or "confirmed",
				transparency=payload.get("transparency") or "opaque",
			)
		except pydantic.ValidationError as e:
			raise ValidationError(f"calendar event {event_id} is malformed: {e.errors()[0]['msg']}")

	def _parse_response(self, payload: Dict[str, Any]) -> ExternalCalendarEvent:
		try:
			return self.parse_event(payload)
		except ValidationError as e:
			raise CalendarGatewayError(f"Google Calendar returned an unusable event: {e.message}") from e
