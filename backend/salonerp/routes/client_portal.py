# Overview: Flask API routes for client self-service bookings.

from flask import Blueprint, jsonify

from ..decorators import with_request_context, api_errors, json_body
from ..services import appointment_service
from .appointments import list_filters


client_portal_bp = Blueprint("client_portal", __name__, url_prefix="/api/client-portal")


@client_portal_bp.get("/appointments")
@with_request_context
@api_errors
def list_portal_appointments(ctx):
    appointments = appointment_service.list_appointments(ctx, **list_filters())
    return jsonify({"appointments": [a.to_dict() for a in appointments]}), 200


@client_portal_bp.post("/appointments")
@with_request_context
@api_errors
def book_portal_appointment(ctx):
    """
    Book from the client portal.

    location_id is required, the date must be in the future and the slot
    must be free for the staff member at that location.

    Returns:
        201: Booked
        400: Missing fields or past date
        409: Slot taken (response lists conflicts)
    """
    appointment = appointment_service.book_client_portal_appointment(ctx, json_body())
    return jsonify({"success": True, "appointment": appointment.to_dict()}), 201
