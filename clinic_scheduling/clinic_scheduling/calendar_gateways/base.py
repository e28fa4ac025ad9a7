"""
Base Calendar Gateway

Defines the interface that all external calendar adapters must implement,
and the bounded call wrapper the engine uses for every gateway request.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

from ..scheduling.exceptions import ExternalServiceError, ValidationError
from ..scheduling.models import CalendarCredential, ExternalCalendarEvent, ensure_utc


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Recordatorios por defecto de los eventos espejo: 24 h y 2 h antes
DEFAULT_REMINDER_MINUTES = [24 * 60, 2 * 60]


class CalendarEventDraft(BaseModel):
	"""Evento que el motor quiere crear o actualizar en el calendario externo."""

	title: str
	description: str = ""
	start: datetime
	end: datetime
	timezone: str
	attendee_emails: List[str] = Field(default_factory=list)
	reminder_minutes: List[int] = Field(default_factory=lambda: list(DEFAULT_REMINDER_MINUTES))

	@field_validator("start", "end")
	@classmethod
	def _utc(cls, value: datetime) -> datetime:
		return ensure_utc(value)


class CalendarGateway(ABC):
	"""
	Interfaz base para adaptadores de calendario externo.

	Todos los adaptadores deben implementar estos métodos. Los errores del
	proveedor se reportan como CalendarGatewayError.
	"""

	provider = ""

	@abstractmethod
	async def create_event(
		self,
		credential: CalendarCredential,
		draft: CalendarEventDraft,
	) -> ExternalCalendarEvent:
		"""
		Crea un evento en el calendario del doctor.

		Returns:
			ExternalCalendarEvent: el evento creado (incluye su id)

		Raises:
			CalendarGatewayError: si falla la creación
		"""
		pass

	@abstractmethod
	async def update_event(
		self,
		credential: CalendarCredential,
		event_id: str,
		draft: CalendarEventDraft,
	) -> ExternalCalendarEvent:
		"""Actualiza un evento existente."""
		pass

	@abstractmethod
	async def delete_event(self, credential: CalendarCredential, event_id: str) -> None:
		"""Elimina un evento. Un evento ya inexistente no es error."""
		pass

	@abstractmethod
	async def list_events(
		self,
		credential: CalendarCredential,
		time_min: datetime,
		time_max: datetime,
	) -> List[Dict[str, Any]]:
		"""Payloads crudos del proveedor en la ventana, sin validar."""
		pass

	@abstractmethod
	def parse_event(self, payload: Dict[str, Any], default_zone: Optional[str] = None) -> ExternalCalendarEvent:
		"""
		Convierte un payload crudo en ExternalCalendarEvent.

		Args:
			payload: evento crudo del proveedor
			default_zone: zona para fechas sin zona propia (eventos de día completo)

		Raises:
			ValidationError: si el payload está mal formado
		"""
		pass

	async def free_busy(
		self,
		credential: CalendarCredential,
		time_min: datetime,
		time_max: datetime,
		default_zone: Optional[str] = None,
	) -> List[ExternalCalendarEvent]:
		"""Eventos de la ventana; los mal formados se omiten."""
		events = []
		for payload in await self.list_events(credential, time_min, time_max):
			try:
				events.append(self.parse_event(payload, default_zone))
			except ValidationError as e:
				logger.warning(f"Skipping malformed calendar event: {e.message}")
		return events

	async def aclose(self) -> None:
		"""Libera recursos del adaptador (conexiones HTTP)."""
		pass


class CalendarGatewayError(Exception):
	"""Excepción para errores del proveedor de calendario."""

	def __init__(self, message: str, status_code: Optional[int] = None):
		super().__init__(message)
		self.status_code = status_code


async def call_gateway(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
	"""
	Ejecuta una llamada al gateway con timeout acotado.

	Raises:
		ExternalServiceError: si el proveedor falla o no responde a tiempo
	"""
	try:
		return await asyncio.wait_for(awaitable, timeout=timeout)
	except asyncio.TimeoutError:
		raise ExternalServiceError(
			f"Calendar {operation} timed out after {timeout:g}s",
			operation=operation,
		)
	except CalendarGatewayError as e:
		raise ExternalServiceError(
			f"Calendar {operation} failed: {e}",
			operation=operation,
			status_code=e.status_code,
		) from e
