"""
Point-of-sale service

A sale is written once, at checkout, as a Transaction with itemized
TransactionItem rows. Services and products may be mixed in one
consolidated transaction.

PRICING:
- Unit prices come from the catalog unless unit_price_cents is supplied.
- discount_percentage (0..100) applies to service items only. Each item's
  discount is rounded half-up to the cent. Products are never discounted.

INVENTORY:
- Product items leave stock at the sale location through the same
  conditional decrement the stock ledger uses, with a "sale" audit row.
- Stock, items, audit rows and the optional appointment completion commit
  together or not at all.
- A linked pending appointment is confirmed and then completed by the sale;
  cancelled, no-show and blocked entries refuse it.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..context import RequestContext
from ..models import Transaction, TransactionItem, Appointment, Client, StaffMember, Service, Product
from ..models.sales import (
    TRANSACTION_TYPE_SERVICE,
    TRANSACTION_TYPE_PRODUCT,
    TRANSACTION_TYPE_CONSOLIDATED,
    ITEM_TYPE_SERVICE,
    ITEM_TYPE_PRODUCT,
    PAYMENT_METHODS,
)
from salonerp.time_utils import utcnow, day_bounds
from salonerp.validation import ValidationError, NotFoundError, MAX_PRICE_CENTS, require_positive_int
from .concurrency import lock_for_update, run_with_retry
from .location_service import get_active_location
from .inventory_service import AUDIT_SALE, decrement_stock, record_audit
from .appointment_service import STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED, transition_appointment


TRANSACTION_TYPES = {TRANSACTION_TYPE_SERVICE, TRANSACTION_TYPE_PRODUCT, TRANSACTION_TYPE_CONSOLIDATED}


def percentage_of(amount_cents: int, percentage: int) -> int:
    """Half-up rounding to the cent: 1250 * 15% = 187.5 -> 188."""
    return (amount_cents * percentage + 50) // 100


def _optional_id(payload: dict, field: str) -> int | None:
    value = payload.get(field)
    if value is None:
        return None
    return require_positive_int(value, field)


def _parse_discount(value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("discount_percentage must be an integer between 0 and 100")
    if value < 0 or value > 100:
        raise ValidationError("discount_percentage must be an integer between 0 and 100")
    return value


def _parse_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("items entries must be objects")
        item_type = raw.get("type")
        if item_type == ITEM_TYPE_SERVICE:
            ref = require_positive_int(raw.get("service_id"), "service_id")
        elif item_type == ITEM_TYPE_PRODUCT:
            ref = require_positive_int(raw.get("product_id"), "product_id")
        else:
            raise ValidationError("item type must be 'service' or 'product'")

        unit_price = raw.get("unit_price_cents")
        if unit_price is not None:
            if isinstance(unit_price, bool) or not isinstance(unit_price, int):
                raise ValidationError("unit_price_cents must be an integer")
            if unit_price < 0 or unit_price > MAX_PRICE_CENTS:
                raise ValidationError(f"unit_price_cents must be between 0 and {MAX_PRICE_CENTS}")

        items.append({
            "type": item_type,
            "ref": ref,
            "quantity": require_positive_int(raw.get("quantity", 1), "quantity"),
            "unit_price_cents": unit_price,
        })
    return items


def _transaction_type(items: list[dict]) -> str:
    kinds = {item["type"] for item in items}
    if kinds == {ITEM_TYPE_SERVICE}:
        return TRANSACTION_TYPE_SERVICE
    if kinds == {ITEM_TYPE_PRODUCT}:
        return TRANSACTION_TYPE_PRODUCT
    return TRANSACTION_TYPE_CONSOLIDATED


def create_sale(ctx: RequestContext, payload: dict) -> Transaction:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    location_id = _optional_id(payload, "location_id")
    if location_id is None:
        raise ValidationError("Missing required fields: location_id")
    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")

    items = _parse_items(payload.get("items"))
    discount_percentage = _parse_discount(payload.get("discount_percentage"))
    client_id = _optional_id(payload, "client_id")
    staff_id = _optional_id(payload, "staff_id")
    appointment_id = _optional_id(payload, "appointment_id")
    notes = payload.get("notes")

    def _op():
        location = get_active_location(location_id)
        ctx.require_access(location_id)

        client = staff = appointment = None
        if client_id is not None:
            client = db.session.query(Client).filter_by(id=client_id).first()
            if client is None:
                raise NotFoundError("Client not found")
        if staff_id is not None:
            staff = db.session.query(StaffMember).filter_by(id=staff_id).first()
            if staff is None:
                raise NotFoundError("Staff member not found")
        if appointment_id is not None:
            appointment = lock_for_update(db.session.query(Appointment).filter_by(id=appointment_id)).first()
            if appointment is None:
                raise NotFoundError("Appointment not found")
            ctx.require_access(appointment.location_id)

        tx = Transaction(
            location_id=location.id,
            client_id=client.id if client else (appointment.client_id if appointment else None),
            client_name=client.name if client else (appointment.client_name if appointment else None),
            staff_id=staff.id if staff else (appointment.staff_id if appointment else None),
            staff_name=staff.name if staff else (appointment.staff_name if appointment else None),
            appointment_id=appointment.id if appointment else None,
            type=_transaction_type(items),
            source="pos",
            payment_method=payment_method,
            status="completed",
            discount_percentage=discount_percentage,
            notes=notes,
            created_by=ctx.actor_name,
            created_at=utcnow(),
            total_cents=0,
        )
        db.session.add(tx)

        original_service = service_total = product_total = 0
        for item in items:
            if item["type"] == ITEM_TYPE_SERVICE:
                service = db.session.query(Service).filter_by(id=item["ref"]).first()
                if service is None:
                    raise NotFoundError(f"Service {item['ref']} not found")
                unit = item["unit_price_cents"] if item["unit_price_cents"] is not None else service.price_cents
                gross = unit * item["quantity"]
                discount = percentage_of(gross, discount_percentage)
                tx.items.append(TransactionItem(
                    item_type=ITEM_TYPE_SERVICE,
                    service_id=service.id,
                    name=service.name,
                    quantity=item["quantity"],
                    unit_price_cents=unit,
                    discount_amount_cents=discount,
                    total_price_cents=gross - discount,
                ))
                original_service += gross
                service_total += gross - discount
            else:
                product = db.session.query(Product).filter_by(id=item["ref"]).first()
                if product is None:
                    raise NotFoundError(f"Product {item['ref']} not found")
                if not product.is_active:
                    raise ValidationError(f"Product '{product.name}' is inactive")
                unit = item["unit_price_cents"] if item["unit_price_cents"] is not None else product.price_cents
                tx.items.append(TransactionItem(
                    item_type=ITEM_TYPE_PRODUCT,
                    product_id=product.id,
                    name=product.name,
                    quantity=item["quantity"],
                    unit_price_cents=unit,
                    discount_amount_cents=0,
                    total_price_cents=unit * item["quantity"],
                    unit_cost_cents=product.cost_cents,
                ))
                product_total += unit * item["quantity"]

        tx.original_service_amount_cents = original_service
        tx.service_amount_cents = service_total
        tx.product_amount_cents = product_total
        tx.discount_amount_cents = original_service - service_total
        tx.total_cents = service_total + product_total

        db.session.flush()
        tx.reference = f"SALE-{tx.id:06d}"

        for line in tx.items:
            if line.item_type != ITEM_TYPE_PRODUCT:
                continue
            change = decrement_stock(
                line.product_id,
                location.id,
                line.quantity,
                location_name=location.name,
            )
            record_audit(
                change,
                adjustment_type=AUDIT_SALE,
                quantity=line.quantity,
                performed_by=ctx.actor_name,
                reason="POS sale",
                reference=tx.reference,
            )

        if appointment is not None and appointment.status != STATUS_COMPLETED:
            # pending cannot jump to completed; record the confirmation step too
            if appointment.status == STATUS_PENDING:
                transition_appointment(appointment, STATUS_CONFIRMED, ctx.actor_name)
            transition_appointment(appointment, STATUS_COMPLETED, ctx.actor_name)

        db.session.commit()
        return tx

    return run_with_retry(_op)


def get_sale(ctx: RequestContext, sale_id: int) -> Transaction:
    tx = db.session.query(Transaction).filter_by(id=sale_id).first()
    if tx is None:
        raise NotFoundError("Sale not found")
    ctx.require_access(tx.location_id)
    return tx


def list_sales(
    ctx: RequestContext,
    *,
    location_id: int | None = None,
    start=None,
    end=None,
    type: str | None = None,
    limit: int = 200,
) -> list[Transaction]:
    q = db.session.query(Transaction)
    if location_id is not None:
        q = q.filter(Transaction.location_id == location_id)
    if type is not None:
        if type not in TRANSACTION_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(sorted(TRANSACTION_TYPES))}")
        q = q.filter(Transaction.type == type)
    if start is not None:
        q = q.filter(Transaction.created_at >= start)
    if end is not None:
        q = q.filter(Transaction.created_at < end)
    q = ctx.filter_by_location(q, Transaction.location_id)
    return q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()


def daily_summary(ctx: RequestContext, day: date, *, location_id: int | None = None) -> dict:
    start, end = day_bounds(day)
    q = db.session.query(Transaction).filter(
        Transaction.status == "completed",
        Transaction.created_at >= start,
        Transaction.created_at < end,
    )
    if location_id is not None:
        q = q.filter(Transaction.location_id == location_id)
    q = ctx.filter_by_location(q, Transaction.location_id)

    totals = q.with_entities(
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.total_cents), 0),
        func.coalesce(func.sum(Transaction.service_amount_cents), 0),
        func.coalesce(func.sum(Transaction.product_amount_cents), 0),
        func.coalesce(func.sum(Transaction.discount_amount_cents), 0),
    ).one()

    by_payment = {
        method: int(total)
        for method, total in q.with_entities(
            Transaction.payment_method,
            func.sum(Transaction.total_cents),
        ).group_by(Transaction.payment_method).all()
    }
    by_type = {
        tx_type: int(count)
        for tx_type, count in q.with_entities(
            Transaction.type,
            func.count(Transaction.id),
        ).group_by(Transaction.type).all()
    }

    count, total, services, products, discounts = totals
    return {
        "date": day.isoformat(),
        "location_id": location_id,
        "transaction_count": int(count),
        "total_cents": int(total),
        "service_amount_cents": int(services),
        "product_amount_cents": int(products),
        "discount_amount_cents": int(discounts),
        "by_payment_method": by_payment,
        "by_type": by_type,
    }
