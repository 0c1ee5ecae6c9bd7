# Overview: Flask API routes for point-of-sale transactions.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import with_request_context, api_errors, json_body, query_int, query_limit, query_date, query_datetime
from ..services import sales_service
from salonerp.time_utils import utcnow


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@with_request_context
@api_errors
def list_sales(ctx):
    sales = sales_service.list_sales(
        ctx,
        location_id=query_int("location_id"),
        start=query_datetime("start"),
        end=query_datetime("end"),
        type=request.args.get("type") or None,
        limit=query_limit(200, 1000),
    )
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.post("")
@with_request_context
@api_errors
def create_sale(ctx):
    """
    Record a completed sale.

    Request body:
    {
        "location_id": int,
        "payment_method": "cash" | "card" | "mobile" | "bank_transfer" | "gift_card",
        "items": [
            {"type": "service", "service_id": int, "quantity": int, "unit_price_cents": int (optional)},
            {"type": "product", "product_id": int, "quantity": int, "unit_price_cents": int (optional)}
        ],
        "discount_percentage": int 0..100 (optional, services only),
        "client_id", "staff_id", "appointment_id", "notes" (optional)
    }

    Returns:
        201: Sale recorded
        409: Insufficient stock for a product item, or appointment cancelled, no-show or blocked
    """
    sale = sales_service.create_sale(ctx, json_body())
    current_app.logger.info(
        "Sale recorded: %s type=%s total_cents=%s (actor=%s)",
        sale.reference,
        sale.type,
        sale.total_cents,
        ctx.actor_name,
    )
    return jsonify(sale.to_dict()), 201


@sales_bp.get("/summary")
@with_request_context
@api_errors
def daily_summary(ctx):
    day = query_date("date") or utcnow().date()
    return jsonify(sales_service.daily_summary(ctx, day, location_id=query_int("location_id"))), 200


@sales_bp.get("/<int:sale_id>")
@with_request_context
@api_errors
def get_sale(sale_id: int, ctx):
    sale = sales_service.get_sale(ctx, sale_id)
    return jsonify(sale.to_dict()), 200
