"""
Scheduled Tasks

Background tasks that run periodically:
- sync_connected_calendars: pulls external calendar changes for every doctor due
"""

import asyncio

import frappe

from ..stores.frappe_store import build_service
from .models import utc_now


def sync_connected_calendars() -> int:
	"""
	Sincroniza los calendarios externos cuyo next_sync_at ya venció.
	Se ejecuta cada 15 minutos vía cron (configurado en hooks.py).

	Algoritmo:
		1. Buscar doctores con calendario conectado
		2. Para cada doctor con next_sync_at vencido (o nunca sincronizado):
			- Ejecutar sync
			- Registrar errores por evento
		3. Log cantidad de doctores sincronizados

	Returns:
		int: Cantidad de doctores sincronizados
	"""
	return asyncio.run(_sync_due_doctors())


async def _sync_due_doctors() -> int:
	service = build_service()
	logger = frappe.logger("clinic_scheduling")
	synced_count = 0

	try:
		# 1. Doctores con calendario
		doctors = await service.lifecycle.doctors.list_calendar_doctors()
		now = utc_now()

		# 2. Sincronizar los vencidos
		for doctor in doctors:
			if doctor.next_sync_at and doctor.next_sync_at > now:
				continue

			try:
				result = await service.sync_calendar(doctor.id)
				synced_count += 1

				if result.errors:
					logger.warning(
						f"Calendar sync for {doctor.id} finished with {len(result.errors)} errors: "
						f"{result.errors[:5]}"
					)

			except Exception as e:
				frappe.log_error(
					message=f"Error al sincronizar calendario de {doctor.id}: {str(e)}",
					title="Calendar Sync Failed"
				)
				# Continuar con los demás doctores
				continue
	finally:
		await service.aclose()

	# 3. Log cantidad de doctores sincronizados
	if synced_count > 0:
		logger.info(f"sync_connected_calendars: {synced_count} calendarios sincronizados")

	return synced_count
