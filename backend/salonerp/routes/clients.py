# Overview: Flask API routes for clients; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..models import Client
from ..decorators import with_request_context, api_errors, json_body, query_limit
from ..services import client_service
from ..validation import ModelValidationPolicy, validate_payload


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "preferred_location_id", "notes"},
    required_on_create={"name"},
)


@clients_bp.get("")
@with_request_context
@api_errors
def list_clients(ctx):
    clients = client_service.list_clients(
        search=request.args.get("search") or request.args.get("q"),
        limit=query_limit(100, 500),
    )
    return jsonify({"clients": [c.to_dict() for c in clients]}), 200


@clients_bp.post("")
@with_request_context
@api_errors
def create_client(ctx):
    patch = validate_payload(model=Client, payload=json_body(), policy=CLIENT_POLICY, partial=False)
    client = client_service.create_client(patch)
    return jsonify(client.to_dict()), 201


@clients_bp.get("/<int:client_id>")
@with_request_context
@api_errors
def get_client(client_id: int, ctx):
    client = client_service.get_client(client_id)
    return jsonify(client.to_dict()), 200


@clients_bp.put("/<int:client_id>")
@with_request_context
@api_errors
def update_client(client_id: int, ctx):
    patch = validate_payload(model=Client, payload=json_body(), policy=CLIENT_POLICY, partial=True)
    client = client_service.update_client(client_id, patch)
    return jsonify(client.to_dict()), 200


@clients_bp.get("/<int:client_id>/history")
@with_request_context
@api_errors
def client_history(client_id: int, ctx):
    return jsonify(client_service.client_history(ctx, client_id)), 200
