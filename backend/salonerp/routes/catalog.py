# Overview: Flask API routes for service categories and services.

from flask import Blueprint, jsonify

from ..models import ServiceCategory, Service
from ..decorators import with_request_context, api_errors, json_body, query_int, query_bool
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

SERVICE_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "name", "description", "duration", "price_cents", "is_active"},
    required_on_create={"name", "duration", "price_cents"},
)


@catalog_bp.get("/service-categories")
@with_request_context
@api_errors
def list_categories(ctx):
    categories = catalog_service.list_categories()
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@catalog_bp.post("/service-categories")
@with_request_context
@api_errors
def create_category(ctx):
    patch = validate_payload(model=ServiceCategory, payload=json_body(), policy=CATEGORY_POLICY, partial=False)
    category = catalog_service.create_category(patch)
    return jsonify(category.to_dict()), 201


@catalog_bp.get("/service-categories/<int:category_id>")
@with_request_context
@api_errors
def get_category(category_id: int, ctx):
    category = catalog_service.get_category(category_id)
    data = category.to_dict()
    data["services"] = [s.to_dict() for s in catalog_service.list_services(category_id=category_id)]
    return jsonify(data), 200


@catalog_bp.get("/services")
@with_request_context
@api_errors
def list_services(ctx):
    services = catalog_service.list_services(
        category_id=query_int("category_id"),
        include_inactive=query_bool("include_inactive"),
    )
    return jsonify({"services": [s.to_dict() for s in services]}), 200


@catalog_bp.post("/services")
@with_request_context
@api_errors
def create_service(ctx):
    patch = validate_payload(model=Service, payload=json_body(), policy=SERVICE_POLICY, partial=False)
    service = catalog_service.create_service(patch)
    return jsonify(service.to_dict()), 201


@catalog_bp.get("/services/<int:service_id>")
@with_request_context
@api_errors
def get_service(service_id: int, ctx):
    service = catalog_service.get_service(service_id)
    return jsonify(service.to_dict()), 200
