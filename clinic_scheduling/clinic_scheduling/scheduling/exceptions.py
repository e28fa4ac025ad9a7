"""
Scheduling Errors

Error taxonomy shared by every scheduling component. The Frappe API layer
translates these into HTTP-aware Frappe exceptions.
"""

from typing import Optional


class SchedulingError(Exception):
	"""Base de todos los errores del motor de agendamiento."""

	def __init__(self, message: str, **details):
		super().__init__(message)
		self.message = message
		self.details = details


class NotFoundError(SchedulingError):
	"""Doctor, paciente o cita inexistente."""
	pass


class ValidationError(SchedulingError):
	"""Entrada mal formada: duración, fecha, tipo, zona horaria, evento externo."""
	pass


class ConflictError(SchedulingError):
	"""
	Slot no disponible o transición de estado ilegal.

	`tier` indica qué nivel rechazó la reserva:
	"working_hours", "local_store", "external_calendar" o "status".
	"""

	def __init__(self, message: str, tier: Optional[str] = None, **details):
		super().__init__(message, **details)
		self.tier = tier


class ExternalServiceError(SchedulingError):
	"""Falla (o timeout) del calendario externo."""
	pass
