"""
Appointment API Endpoints

Whitelisted functions for frontend/external use. Each endpoint validates
its raw arguments, runs the scheduling engine and returns JSON-friendly
dicts. Engine errors surface as Frappe exceptions:
- 404 DoesNotExistError: unknown doctor, patient or appointment
- 409 SlotConflictError: slot unavailable or illegal status change
- 417 ValidationError: malformed input
- 502 CalendarServiceError: external calendar failure
"""

import frappe
from typing import Any, Dict, List, Optional

from clinic_scheduling.api.shared import (
    optional_int,
    parse_json_object,
    parse_utc_datetime,
    run_engine,
    serialize,
    validate_docname,
)


@frappe.whitelist(methods=['GET'])
def get_available_slots(doctor: str, date: str, duration: Optional[str] = None) -> List[Dict[str, Any]]:
	"""
	Obtiene los slots de un día local del doctor.

	Args:
		doctor: nombre del Doctor Schedule
		date: fecha local del doctor (YYYY-MM-DD)
		duration: minutos por cita (opcional, por defecto la del doctor)

	Returns:
		list[dict]: [
			{
				"start": "2026-01-20T12:00:00Z",
				"end": "2026-01-20T13:00:00Z",
				"available": True
			},
			...
		]

	Example:
		```javascript
		frappe.call({
			method: "clinic_scheduling.api.appointments.get_available_slots",
			args: {doctor: "DR-0001", date: "2026-01-20", duration: 60},
			callback: function(r) {
				console.log(r.message);
			}
		});
		```
	"""
	doctor = validate_docname(doctor, "doctor")
	duration = optional_int(duration, "duration")

	slots = run_engine(
		lambda service: service.get_available_slots(doctor, date, duration),
		"get_available_slots",
	)
	return serialize(slots)


@frappe.whitelist(methods=['GET'])
def get_doctor_availability(doctor: str, from_date: str, to_date: str) -> List[Dict[str, Any]]:
	"""Slots de cada día del rango [from_date, to_date] (YYYY-MM-DD)."""
	doctor = validate_docname(doctor, "doctor")

	slots = run_engine(
		lambda service: service.get_doctor_availability(doctor, from_date, to_date),
		"get_doctor_availability",
	)
	return serialize(slots)


@frappe.whitelist(methods=['GET'])
def check_availability(doctor: str, date_time: str, duration: str) -> Dict[str, bool]:
	"""
	Verifica si un instante está disponible.

	Args:
		doctor: nombre del Doctor Schedule
		date_time: instante ISO 8601 (sin offset se interpreta como UTC)
		duration: minutos

	Returns:
		dict: {"available": bool}
	"""
	doctor = validate_docname(doctor, "doctor")
	start = parse_utc_datetime(date_time)
	duration = optional_int(duration, "duration")

	available = run_engine(
		lambda service: service.check_availability(doctor, start, duration),
		"check_availability",
	)
	return {"available": available}


@frappe.whitelist(methods=['GET', 'POST'])
def validate_appointment(
	doctor: str,
	date_time: str,
	duration: str,
	appointment: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Valida un horario ANTES de guardarlo y reporta qué nivel lo rechaza.
	Útil para UI/frontend para mostrar errores antes de reservar.

	Returns:
		dict: {
			"available": bool,
			"tier": "working_hours" | "local_store" | "external_calendar" | None,
			"reason": str | None,
			"external_checked": bool,
			"external_skipped": bool,
			"external_error": str | None,
			"conflicting_appointments": [ids],
			"conflicting_events": [ids]
		}
	"""
	doctor = validate_docname(doctor, "doctor")
	start = parse_utc_datetime(date_time)
	duration = optional_int(duration, "duration")
	if appointment:
		appointment = validate_docname(appointment, "appointment")

	report = run_engine(
		lambda service: service.validate_appointment(doctor, start, duration, appointment),
		"validate_appointment",
	)
	return serialize(report)


@frappe.whitelist(methods=['POST'])
def create_appointment(
	doctor: str,
	patient: str,
	date_time: str,
	duration: Optional[str] = None,
	appointment_type: str = "presential",
	notes: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Crea una cita.

	Args:
		doctor: nombre del Doctor Schedule
		patient: nombre del Clinic Patient
		date_time: hora local del doctor (YYYY-MM-DD HH:MM:SS) o ISO 8601 con offset
		duration: minutos (opcional)
		appointment_type: presential | remote | home
		notes: notas (opcional)

	Returns:
		dict: {"appointment": {...}, "side_effects": [{name, ok, skipped, error}]}

	Example:
		```javascript
		frappe.call({
			method: "clinic_scheduling.api.appointments.create_appointment",
			args: {
				doctor: "DR-0001",
				patient: "PAT-0001",
				date_time: "2026-01-20 10:00:00",
				duration: 60,
				appointment_type: "presential"
			},
			callback: function(r) {
				console.log("Cita creada:", r.message.appointment);
			}
		});
		```
	"""
	request = {
		"doctor_id": validate_docname(doctor, "doctor"),
		"patient_id": validate_docname(patient, "patient"),
		"date_time": date_time,
		"duration": optional_int(duration, "duration"),
		"type": appointment_type or "presential",
		"notes": notes,
	}

	result = run_engine(lambda service: service.create_appointment(request), "create_appointment")
	return serialize(result)


@frappe.whitelist(methods=['POST'])
def update_appointment(
	appointment: str,
	doctor: str,
	date_time: Optional[str] = None,
	duration: Optional[str] = None,
	appointment_type: Optional[str] = None,
	notes: Optional[str] = None,
	title: Optional[str] = None,
) -> Dict[str, Any]:
	"""Actualiza solo los campos enviados de una cita no terminal."""
	appointment = validate_docname(appointment, "appointment")
	doctor = validate_docname(doctor, "doctor")
	changes = {
		"date_time": date_time or None,
		"duration": optional_int(duration, "duration"),
		"type": appointment_type or None,
		"notes": notes,
		"title": title,
	}

	result = run_engine(
		lambda service: service.update_appointment(appointment, doctor, changes),
		"update_appointment",
	)
	return serialize(result)


@frappe.whitelist(methods=['POST'])
def cancel_appointment(appointment: str, doctor: str, reason: Optional[str] = None) -> Dict[str, Any]:
	"""
	Cancela una cita. Si se cancela dentro de la ventana de aviso del doctor
	se registra la penalidad configurada.
	"""
	appointment = validate_docname(appointment, "appointment")
	doctor = validate_docname(doctor, "doctor")

	result = run_engine(
		lambda service: service.cancel_appointment(appointment, doctor, reason),
		"cancel_appointment",
	)
	return serialize(result)


@frappe.whitelist(methods=['POST'])
def confirm_appointment(appointment: str, doctor: str) -> Dict[str, Any]:
	appointment = validate_docname(appointment, "appointment")
	doctor = validate_docname(doctor, "doctor")

	result = run_engine(
		lambda service: service.confirm_appointment(appointment, doctor),
		"confirm_appointment",
	)
	return serialize(result)


@frappe.whitelist(methods=['POST'])
def complete_appointment(appointment: str, doctor: str, consultation: Optional[str] = None) -> Dict[str, Any]:
	"""
	Completa una cita confirmada.

	Args:
		consultation: JSON {diagnosis, prescription, next_appointment, notes}
	"""
	appointment = validate_docname(appointment, "appointment")
	doctor = validate_docname(doctor, "doctor")
	details = parse_json_object(consultation, "consultation")

	result = run_engine(
		lambda service: service.complete_appointment(appointment, doctor, details),
		"complete_appointment",
	)
	return serialize(result)


@frappe.whitelist(methods=['POST'])
def mark_no_show(appointment: str, doctor: str) -> Dict[str, Any]:
	appointment = validate_docname(appointment, "appointment")
	doctor = validate_docname(doctor, "doctor")

	result = run_engine(
		lambda service: service.mark_no_show(appointment, doctor),
		"mark_no_show",
	)
	return serialize(result)


@frappe.whitelist(methods=['GET'])
def get_appointment(appointment: str, doctor: str) -> Dict[str, Any]:
	"""Cita con nombres de paciente y doctor y la hora local de la reserva."""
	appointment = validate_docname(appointment, "appointment")
	doctor = validate_docname(doctor, "doctor")

	details = run_engine(
		lambda service: service.get_appointment(appointment, doctor),
		"get_appointment",
	)
	return serialize(details)


@frappe.whitelist(methods=['GET'])
def list_appointments(
	doctor: str,
	from_date: Optional[str] = None,
	to_date: Optional[str] = None,
	status: Optional[str] = None,
	patient: Optional[str] = None,
	page: Optional[str] = None,
	limit: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Lista citas tomando el calendario externo como fuente de verdad, con
	fallback al store local.

	Args:
		from_date, to_date: instantes ISO 8601 (opcionales)
		status: estado o lista separada por comas
		patient: filtrar por paciente
		page, limit: paginación (page desde 1)

	Returns:
		dict: {appointments, total, page, limit, total_pages, source}
	"""
	doctor = validate_docname(doctor, "doctor")
	start = parse_utc_datetime(from_date, "from_date")
	end = parse_utc_datetime(to_date, "to_date")
	statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
	if patient:
		patient = validate_docname(patient, "patient")

	result = run_engine(
		lambda service: service.list_appointments(
			doctor,
			start_date=start,
			end_date=end,
			status=statuses,
			patient_id=patient or None,
			page=optional_int(page, "page") or 1,
			limit=optional_int(limit, "limit"),
		),
		"list_appointments",
	)
	return serialize(result)


@frappe.whitelist(methods=['POST'])
def sync_calendar(doctor: str) -> Dict[str, Any]:
	"""
	Sincroniza el calendario externo del doctor con el store local.

	Returns:
		dict: {total_events, new_appointments, updated_appointments, errors}
	"""
	doctor = validate_docname(doctor, "doctor")

	result = run_engine(lambda service: service.sync_calendar(doctor), "sync_calendar")
	return serialize(result)


@frappe.whitelist(methods=['GET'])
def get_calendar_events(doctor: str, from_date: Optional[str] = None, to_date: Optional[str] = None) -> List[Dict[str, Any]]:
	"""Eventos normalizados del calendario externo del doctor."""
	doctor = validate_docname(doctor, "doctor")
	start = parse_utc_datetime(from_date, "from_date")
	end = parse_utc_datetime(to_date, "to_date")

	events = run_engine(
		lambda service: service.list_calendar_events(doctor, start, end),
		"get_calendar_events",
	)
	return serialize(events)
