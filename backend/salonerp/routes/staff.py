# Overview: Flask API routes for staff members, location and service assignments, and credentials.

from flask import Blueprint, jsonify, request, current_app

from ..models import StaffMember
from ..decorators import with_request_context, api_errors, json_body, query_int
from ..services import staff_service
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, require_positive_int


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")

STAFF_POLICY = ModelValidationPolicy(
    writable_fields={"name", "employee_number", "job_role", "email", "phone", "status"},
    required_on_create={"name"},
)


@staff_bp.get("")
@with_request_context
@api_errors
def list_staff(ctx):
    staff = staff_service.list_staff(
        ctx,
        location_id=query_int("location_id"),
        status=request.args.get("status") or None,
    )
    return jsonify({"staff": [s.to_dict() for s in staff]}), 200


@staff_bp.post("")
@with_request_context
@api_errors
def create_staff(ctx):
    """
    Request body:
    {
        "name": str,
        "employee_number": str (optional),
        "job_role": str (optional),
        "location_ids": [int] (optional),
        ...
    }
    """
    data = dict(json_body())
    location_ids = data.pop("location_ids", None)
    patch = validate_payload(model=StaffMember, payload=data, policy=STAFF_POLICY, partial=False)
    for location_id in location_ids or []:
        if isinstance(location_id, int) and not isinstance(location_id, bool):
            ctx.require_access(location_id)
    staff = staff_service.create_staff(patch, location_ids=location_ids)
    return jsonify(staff.to_dict()), 201


@staff_bp.get("/<int:staff_id>")
@with_request_context
@api_errors
def get_staff(staff_id: int, ctx):
    staff = staff_service.get_staff(staff_id)
    return jsonify(staff.to_dict()), 200


@staff_bp.put("/<int:staff_id>")
@with_request_context
@api_errors
def update_staff(staff_id: int, ctx):
    patch = validate_payload(model=StaffMember, payload=json_body(), policy=STAFF_POLICY, partial=True)
    staff = staff_service.update_staff(staff_id, patch)
    return jsonify(staff.to_dict()), 200


@staff_bp.put("/<int:staff_id>/locations")
@with_request_context
@api_errors
def set_staff_locations(staff_id: int, ctx):
    """Replace a staff member's location assignments. Body: {"location_ids": [int]}"""
    if ctx.is_restricted:
        return jsonify({"error": "Changing location assignments requires access to all locations"}), 403
    data = json_body()
    if "location_ids" not in data:
        raise ValidationError("Missing required fields: location_ids")
    staff = staff_service.set_staff_locations(staff_id, data["location_ids"])
    return jsonify(staff.to_dict()), 200


@staff_bp.get("/credentials")
@with_request_context
@api_errors
def list_credentials(ctx):
    return jsonify({"credentials": staff_service.list_credentials()}), 200


@staff_bp.post("/credentials")
@with_request_context
@api_errors
def create_credentials(ctx):
    """
    Issue login credentials for a staff member.

    Request body:
    {
        "staff_id": int,
        "role": str (optional, default "staff"),
        "password": str (optional; generated when omitted)
    }

    Returns:
        201: Credentials created; temporary_password is only shown here
        404: Staff member not found
        409: Credentials already exist
    """
    data = json_body()
    if data.get("staff_id") is None:
        raise ValidationError("Missing required fields: staff_id")
    staff_id = data["staff_id"]
    if isinstance(staff_id, bool) or not isinstance(staff_id, int):
        raise ValidationError("staff_id must be an integer")
    password = data.get("password")
    if password is not None and not isinstance(password, str):
        raise ValidationError("password must be a string")

    issued = staff_service.create_credentials(
        staff_id,
        email_domain=current_app.config["STAFF_EMAIL_DOMAIN"],
        role=data.get("role") or "staff",
        password=password,
    )
    current_app.logger.info("Credentials issued for staff %s (actor=%s)", staff_id, ctx.actor_name)
    return jsonify(issued.to_dict()), 201


CREDENTIAL_ACTIONS = ("reset_password", "update_password", "update_locations", "toggle_active")


@staff_bp.put("/credentials/<int:staff_id>")
@with_request_context
@api_errors
def update_credentials(staff_id: int, ctx):
    """
    Manage an existing login account.

    Request body:
    {
        "action": "reset_password" | "update_password" | "update_locations" | "toggle_active",
        "new_password": str (update_password),
        "location_ids": [int] (update_locations)
    }

    Returns:
        200: Action applied; reset_password returns temporary_password once
        400: Unknown action, weak password, or no credentials to manage
        404: Staff member not found
    """
    data = json_body()
    action = data.get("action")
    if action not in CREDENTIAL_ACTIONS:
        raise ValidationError(f"action must be one of: {', '.join(CREDENTIAL_ACTIONS)}")

    if action == "reset_password":
        issued = staff_service.reset_password(staff_id)
        body = {"message": "Password reset", **issued.to_dict()}
    elif action == "update_password":
        user = staff_service.update_password(staff_id, data.get("new_password"))
        body = {"message": "Password updated", "staff_id": staff_id, "user": user.to_dict()}
    elif action == "update_locations":
        if ctx.is_restricted:
            return jsonify({"error": "Changing location assignments requires access to all locations"}), 403
        if "location_ids" not in data:
            raise ValidationError("Missing required fields: location_ids")
        staff = staff_service.set_credential_locations(staff_id, data["location_ids"])
        body = {"message": "Locations updated", "staff_id": staff_id, "location_ids": staff.location_ids}
    else:
        user = staff_service.toggle_credentials_active(staff_id)
        body = {
            "message": "Account activated" if user.is_active else "Account deactivated",
            "staff_id": staff_id,
            "is_active": user.is_active,
            "user": user.to_dict(),
        }

    current_app.logger.info("Credentials %s for staff %s (actor=%s)", action, staff_id, ctx.actor_name)
    return jsonify(body), 200


@staff_bp.delete("/credentials/<int:staff_id>")
@with_request_context
@api_errors
def delete_credentials(staff_id: int, ctx):
    """Delete the login account; the staff record is kept. 400 when none exists."""
    staff = staff_service.remove_credentials(staff_id)
    current_app.logger.info("Credentials removed for staff %s (actor=%s)", staff_id, ctx.actor_name)
    return jsonify({"message": "Credentials removed", "staff": staff.to_dict()}), 200


def _services_body(staff_id: int, services) -> dict:
    return {"staff_id": staff_id, "services": [s.to_dict() for s in services]}


@staff_bp.get("/<int:staff_id>/services")
@with_request_context
@api_errors
def list_staff_services(staff_id: int, ctx):
    return jsonify(_services_body(staff_id, staff_service.list_staff_services(staff_id))), 200


@staff_bp.put("/<int:staff_id>/services")
@with_request_context
@api_errors
def set_staff_services(staff_id: int, ctx):
    """Replace the services a staff member performs. Body: {"service_ids": [int]}"""
    data = json_body()
    if "service_ids" not in data:
        raise ValidationError("Missing required fields: service_ids")
    services = staff_service.set_staff_services(staff_id, data["service_ids"])
    return jsonify(_services_body(staff_id, services)), 200


@staff_bp.post("/<int:staff_id>/services")
@with_request_context
@api_errors
def add_staff_service(staff_id: int, ctx):
    data = json_body()
    if data.get("service_id") is None:
        raise ValidationError("Missing required fields: service_id")
    service_id = require_positive_int(data["service_id"], "service_id")
    services = staff_service.add_staff_service(staff_id, service_id)
    return jsonify(_services_body(staff_id, services)), 200


@staff_bp.delete("/<int:staff_id>/services/<int:service_id>")
@with_request_context
@api_errors
def remove_staff_service(staff_id: int, service_id: int, ctx):
    services = staff_service.remove_staff_service(staff_id, service_id)
    return jsonify(_services_body(staff_id, services)), 200
