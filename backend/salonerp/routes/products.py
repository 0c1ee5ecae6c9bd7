# Overview: Flask API routes for products; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..models import Product
from ..decorators import with_request_context, api_errors, json_body, query_int, query_bool
from ..services import product_service
from ..validation import ModelValidationPolicy, validate_payload


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category", "type",
        "price_cents", "cost_cents", "is_retail", "is_active",
    },
    required_on_create={"name", "price_cents"},
)


@products_bp.get("")
@with_request_context
@api_errors
def list_products(ctx):
    """
    Query params:
        location_id: only products stocked there, with "stock" for that location
        include_inactive: include deactivated products
        page, per_page: optional pagination
    """
    result = product_service.list_products(
        ctx,
        location_id=query_int("location_id"),
        include_inactive=query_bool("include_inactive"),
        page=query_int("page"),
        per_page=query_int("per_page"),
    )
    return jsonify(result), 200


@products_bp.post("")
@with_request_context
@api_errors
def create_product(ctx):
    """
    Request body: product fields plus optional
    "initial_stock": [{"location_id": int, "stock": int}, ...]
    """
    data = dict(json_body())
    initial_stock = data.pop("initial_stock", None)
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    product = product_service.create_product(ctx, patch=patch, initial_stock=initial_stock)
    return jsonify(product.to_dict(include_stock=True)), 201


@products_bp.get("/<int:product_id>")
@with_request_context
@api_errors
def get_product(product_id: int, ctx):
    product = product_service.get_product(product_id)
    return jsonify(product.to_dict(include_stock=True)), 200


@products_bp.put("/<int:product_id>")
@with_request_context
@api_errors
def update_product(product_id: int, ctx):
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
    product = product_service.update_product(product_id, patch)
    return jsonify(product.to_dict(include_stock=True)), 200
