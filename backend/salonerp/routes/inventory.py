# backend/salonerp/routes/inventory.py
"""
Inventory stock ledger routes.

Stock semantics:
- Stock is tracked per (product, location); a missing row reads as 0.
- Removals and transfers never take stock below zero. Insufficient stock
  answers 409 with current_stock and requested_quantity.
- ALLOW_NEGATIVE_STOCK (config) relaxes the rule for "remove" adjustments only.
"""
from flask import Blueprint, jsonify, current_app

from ..decorators import with_request_context, api_errors, json_body, query_int, query_limit
from ..services import inventory_service
from ..validation import ValidationError, require_positive_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _require_fields(data: dict, fields: tuple) -> None:
    missing = sorted(f for f in fields if data.get(f) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


@inventory_bp.post("/adjust")
@with_request_context
@api_errors
def adjust_inventory_route(ctx):
    """
    Add or remove stock at one location.

    Request body:
    {
        "product_id": int,
        "location_id": int,
        "adjustment_type": "add" | "remove",
        "quantity": int (> 0),
        "reason": str,
        "notes": str (optional)
    }

    Returns:
        200: previous_stock, new_stock, adjustment, product_location, audit
        400: Invalid request
        404: Product or location not found
        409: Insufficient stock
    """
    data = json_body()
    _require_fields(data, ("product_id", "location_id", "adjustment_type", "quantity", "reason"))

    result = inventory_service.adjust_stock(
        ctx,
        product_id=require_positive_int(data["product_id"], "product_id"),
        location_id=require_positive_int(data["location_id"], "location_id"),
        adjustment_type=data["adjustment_type"],
        quantity=data["quantity"],
        reason=data["reason"],
        notes=data.get("notes"),
        allow_negative=current_app.config.get("ALLOW_NEGATIVE_STOCK", False),
    )
    current_app.logger.info(
        "Stock adjusted: product=%s location=%s %s -> %s (actor=%s)",
        result.product_location.product_id,
        result.product_location.location_id,
        result.previous_stock,
        result.new_stock,
        ctx.actor_name,
    )
    return jsonify(result.to_dict()), 200


@inventory_bp.post("/adjust-multi-location")
@with_request_context
@api_errors
def adjust_multi_location_route(ctx):
    """
    Adjust one product's stock at several locations in one transaction.

    Request body:
    {
        "product_id": int,
        "adjustments": [
            {"location_id": int, "operation": "add" | "remove", "quantity": int (> 0)},
            {"location_id": int, "operation": "set", "new_stock": int (>= 0)}
        ],
        "reason": str,
        "notes": str (optional)
    }

    Returns:
        200: adjustments (per location) and summary totals
        400: Invalid request
        404: Product missing, or a location missing or inactive
        409: Insufficient stock for a removal; nothing is applied
    """
    data = json_body()
    _require_fields(data, ("product_id", "adjustments", "reason"))

    result = inventory_service.adjust_stock_multi(
        ctx,
        product_id=require_positive_int(data["product_id"], "product_id"),
        adjustments=data["adjustments"],
        reason=data["reason"],
        notes=data.get("notes"),
    )
    body = result.to_dict()
    current_app.logger.info(
        "Multi-location adjustment: product=%s locations=%s total_change=%s (actor=%s)",
        body["product_id"],
        body["summary"]["locations_updated"],
        body["summary"]["total_change"],
        ctx.actor_name,
    )
    return jsonify(body), 200


@inventory_bp.get("/transfer")
@with_request_context
@api_errors
def list_transfers_route(ctx):
    transfers = inventory_service.list_transfers(
        ctx,
        product_id=query_int("product_id"),
        location_id=query_int("location_id"),
        limit=query_limit(50, 500),
    )
    return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200


@inventory_bp.post("/transfer")
@with_request_context
@api_errors
def transfer_inventory_route(ctx):
    """
    Move stock between two locations in one transaction.

    Request body:
    {
        "product_id": int,
        "from_location_id": int,
        "to_location_id": int,
        "quantity": int (> 0),
        "reason": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transfer completed
        400: Invalid request (same location, bad quantity, inactive product/location)
        404: Product or location not found
        409: Insufficient stock at the source
    """
    data = json_body()
    _require_fields(data, ("product_id", "from_location_id", "to_location_id", "quantity"))

    result = inventory_service.transfer_stock(
        ctx,
        product_id=require_positive_int(data["product_id"], "product_id"),
        from_location_id=require_positive_int(data["from_location_id"], "from_location_id"),
        to_location_id=require_positive_int(data["to_location_id"], "to_location_id"),
        quantity=data["quantity"],
        reason=data.get("reason"),
        notes=data.get("notes"),
    )
    current_app.logger.info(
        "Stock transferred: %s product=%s qty=%s %s -> %s (actor=%s)",
        result.transfer.reference,
        result.transfer.product_id,
        result.transfer.quantity,
        result.transfer.from_location_id,
        result.transfer.to_location_id,
        ctx.actor_name,
    )
    return jsonify({"transfer": result.to_dict()}), 201


@inventory_bp.get("/stock/<int:product_id>")
@with_request_context
@api_errors
def stock_levels_route(product_id: int, ctx):
    rows = inventory_service.get_stock_levels(ctx, product_id)
    return jsonify({
        "product_id": product_id,
        "locations": [row.to_dict() for row in rows],
        "total_stock": sum(row.stock for row in rows),
    }), 200


@inventory_bp.get("/audit")
@with_request_context
@api_errors
def audit_route(ctx):
    audits = inventory_service.list_audit(
        ctx,
        product_id=query_int("product_id"),
        location_id=query_int("location_id"),
        limit=query_limit(200, 1000),
    )
    return jsonify({"audit": [a.to_dict() for a in audits]}), 200


@inventory_bp.get("/low-stock")
@with_request_context
@api_errors
def low_stock_route(ctx):
    threshold = query_int("threshold")
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    items = inventory_service.low_stock(ctx, threshold=threshold, location_id=query_int("location_id"))
    return jsonify({"threshold": threshold, "items": items}), 200


@inventory_bp.get("/report")
@with_request_context
@api_errors
def stock_report_route(ctx):
    return jsonify(inventory_service.stock_report(ctx)), 200
