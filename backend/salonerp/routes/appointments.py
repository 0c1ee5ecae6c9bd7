# backend/salonerp/routes/appointments.py
"""
Appointment booking and lifecycle routes.

Status changes go through PATCH /<id>/status only; PUT edits details.
"""
from flask import Blueprint, jsonify, request

from ..decorators import with_request_context, api_errors, json_body, query_int, query_date, query_datetime
from ..services import appointment_service
from ..validation import ValidationError


appointments_bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")


def list_filters() -> dict:
    return {
        "client_id": query_int("client_id"),
        "staff_id": query_int("staff_id"),
        "location_id": query_int("location_id"),
        "status": request.args.get("status") or None,
        "day": query_date("date"),
        "start": query_datetime("start"),
        "end": query_datetime("end"),
        "type": request.args.get("type") or None,
    }


@appointments_bp.get("")
@with_request_context
@api_errors
def list_appointments(ctx):
    appointments = appointment_service.list_appointments(ctx, **list_filters())
    return jsonify({"appointments": [a.to_dict() for a in appointments]}), 200


@appointments_bp.post("")
@with_request_context
@api_errors
def create_appointment(ctx):
    """
    Book an appointment.

    Request body:
    {
        "client_id": int,
        "staff_id": int,
        "service_id": int,
        "date": ISO-8601 datetime,
        "duration": int (minutes),
        "location_id": int (optional),
        "notes", "price_cents", "additional_services", "products" (optional)
    }

    Returns:
        201: Created with status "pending" and one history entry
    """
    appointment = appointment_service.create_appointment(ctx, json_body())
    return jsonify(appointment.to_dict()), 201


@appointments_bp.post("/blocked")
@with_request_context
@api_errors
def create_blocked_time(ctx):
    appointment = appointment_service.create_blocked_time(ctx, json_body())
    return jsonify(appointment.to_dict()), 201


@appointments_bp.get("/<int:appointment_id>")
@with_request_context
@api_errors
def get_appointment(appointment_id: int, ctx):
    appointment = appointment_service.get_appointment(ctx, appointment_id)
    return jsonify(appointment.to_dict()), 200


@appointments_bp.put("/<int:appointment_id>")
@with_request_context
@api_errors
def update_appointment(appointment_id: int, ctx):
    appointment = appointment_service.update_appointment(ctx, appointment_id, json_body())
    return jsonify(appointment.to_dict()), 200


@appointments_bp.patch("/<int:appointment_id>/status")
@with_request_context
@api_errors
def update_status(appointment_id: int, ctx):
    """
    Request body: {"status": str}

    Returns:
        200: Updated; status_history grew by one entry
        400: Unknown status
        404: Appointment not found
        409: Transition not allowed (response lists allowed_transitions)
    """
    data = json_body()
    if data.get("status") in (None, ""):
        raise ValidationError("Missing required fields: status")
    appointment = appointment_service.update_appointment_status(ctx, appointment_id, data["status"])
    return jsonify(appointment.to_dict()), 200
