# Overview: Flask API routes for locations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, current_app

from ..models import Location
from ..decorators import with_request_context, api_errors, json_body, query_bool
from ..services import location_service
from ..validation import ModelValidationPolicy, validate_payload


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")

LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "kind", "address", "city", "state", "zip_code",
        "country", "phone", "email", "is_active",
    },
    required_on_create={"name"},
)


@locations_bp.get("")
@with_request_context
@api_errors
def list_locations(ctx):
    locations = location_service.list_locations(ctx, include_inactive=query_bool("include_inactive"))
    return jsonify({"locations": [loc.to_dict() for loc in locations]}), 200


@locations_bp.post("")
@with_request_context
@api_errors
def create_location(ctx):
    patch = validate_payload(model=Location, payload=json_body(), policy=LOCATION_POLICY, partial=False)
    location = location_service.create_location(patch)
    current_app.logger.info("Location created: %s (id=%s, actor=%s)", location.name, location.id, ctx.actor_name)
    return jsonify(location.to_dict()), 201


@locations_bp.get("/<int:location_id>")
@with_request_context
@api_errors
def get_location(location_id: int, ctx):
    ctx.require_access(location_id)
    location = location_service.get_location(location_id)
    return jsonify(location.to_dict()), 200


@locations_bp.put("/<int:location_id>")
@with_request_context
@api_errors
def update_location(location_id: int, ctx):
    ctx.require_access(location_id)
    patch = validate_payload(model=Location, payload=json_body(), policy=LOCATION_POLICY, partial=True)
    location = location_service.update_location(location_id, patch)
    return jsonify(location.to_dict()), 200


@locations_bp.delete("/<int:location_id>")
@with_request_context
@api_errors
def delete_location(location_id: int, ctx):
    """Soft-delete: the location is deactivated, referencing rows are kept."""
    ctx.require_access(location_id)
    location, dependencies = location_service.deactivate_location(location_id)
    current_app.logger.info("Location deactivated: %s (id=%s, actor=%s)", location.name, location.id, ctx.actor_name)
    return jsonify({
        "location": location.to_dict(),
        "dependencies": dependencies,
    }), 200
