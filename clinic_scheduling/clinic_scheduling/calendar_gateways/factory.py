"""
Calendar Gateway Factory

Factory pattern to get the correct gateway based on provider.
"""

from typing import Optional

import httpx

from .base import CalendarGateway


def get_gateway(
	provider: str = "google_calendar",
	http_client: Optional[httpx.AsyncClient] = None,
) -> CalendarGateway:
	"""
	Factory para obtener el gateway correcto según proveedor.

	Args:
		provider: "google_calendar"
		http_client: cliente httpx compartido (opcional)

	Returns:
		CalendarGateway: instancia del gateway

	Raises:
		ValueError: si provider no es soportado
	"""
	if provider == "google_calendar":
		from .google_calendar import GoogleCalendarGateway
		return GoogleCalendarGateway(http_client=http_client)
	else:
		raise ValueError(f"Unsupported calendar provider: {provider}")
