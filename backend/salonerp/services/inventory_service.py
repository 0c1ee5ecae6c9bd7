# Overview: Service-layer operations for per-location stock; encapsulates business logic and database work.

# backend/salonerp/services/inventory_service.py
"""
Inventory Stock Ledger

Stock model:
- ProductLocation.stock is the unit of stock truth for a (product, location) pair.
- A missing ProductLocation row means stock 0; rows are created on first touch.

Write semantics:
- Every change to stock is ONE conditional UPDATE at the database level:
      add:    UPDATE ... SET stock = stock + :q
      remove: UPDATE ... SET stock = stock - :q WHERE stock >= :q
      set:    UPDATE ... SET stock = :n WHERE stock = :previous
  A removal that matches no row was refused for insufficient stock. No
  unguarded read-then-write pair exists, so concurrent adjustments cannot
  lose updates.
- previous/new stock values reported to callers are read back after the
  update inside the same transaction.

Business invariants:
- Stock may never go negative, except "remove" adjustments when the
  ALLOW_NEGATIVE_STOCK switch is passed in by the caller.
- A transfer is one database transaction spanning both location rows, the
  StockTransfer record and both audit rows. If the source cannot cover the
  quantity nothing is written.
- A multi-location adjustment is one transaction for every location it
  names; one refused removal rolls all of them back.

Audit:
- Each stock mutation appends an InventoryAudit row in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, or_, update
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..context import RequestContext
from ..models import Product, ProductLocation, InventoryAudit, StockTransfer, Location
from salonerp.time_utils import utcnow
from salonerp.validation import ValidationError, NotFoundError, ConflictError, require_positive_int
from .concurrency import run_with_retry
from .location_service import get_location, get_active_location


ADJUSTMENT_ADD = "add"
ADJUSTMENT_REMOVE = "remove"
ADJUSTMENT_TYPES = (ADJUSTMENT_ADD, ADJUSTMENT_REMOVE)
ADJUSTMENT_SET = "set"
MULTI_ADJUSTMENT_OPERATIONS = (ADJUSTMENT_ADD, ADJUSTMENT_REMOVE, ADJUSTMENT_SET)

AUDIT_TRANSFER_OUT = "transfer_out"
AUDIT_TRANSFER_IN = "transfer_in"
AUDIT_SALE = "sale"


class InsufficientStockError(ConflictError):
    """Raised when a removal would take stock below zero."""

    def __init__(
        self,
        *,
        product_id: int,
        location_id: int,
        current_stock: int,
        requested_quantity: int,
        location_name: str | None = None,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.current_stock = current_stock
        self.requested_quantity = requested_quantity
        where = f" at {location_name}" if location_name else ""
        super().__init__(
            f"Insufficient stock{where}. Available: {current_stock}, requested: {requested_quantity}"
        )

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "product_id": self.product_id,
            "location_id": self.location_id,
            "current_stock": self.current_stock,
            "requested_quantity": self.requested_quantity,
        }


@dataclass(frozen=True)
class StockChange:
    product_id: int
    location_id: int
    previous_stock: int
    new_stock: int


@dataclass(frozen=True)
class StockAdjustmentResult:
    product_location: ProductLocation
    previous_stock: int
    new_stock: int
    adjustment: int
    audit: InventoryAudit

    def to_dict(self) -> dict:
        return {
            "product_location": self.product_location.to_dict(),
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "adjustment": self.adjustment,
            "audit": self.audit.to_dict(),
        }


@dataclass(frozen=True)
class TransferResult:
    transfer: StockTransfer
    source: StockChange
    destination: StockChange

    def to_dict(self) -> dict:
        data = self.transfer.to_dict()
        return {
            **data,
            "from_location": {
                **data["from_location"],
                "previous_stock": self.source.previous_stock,
                "new_stock": self.source.new_stock,
            },
            "to_location": {
                **data["to_location"],
                "previous_stock": self.destination.previous_stock,
                "new_stock": self.destination.new_stock,
            },
        }


@dataclass(frozen=True)
class MultiLocationAdjustmentResult:
    product: Product
    changes: list[tuple[Location, str, StockChange]]

    def to_dict(self) -> dict:
        adjustments = [
            {
                "location_id": location.id,
                "location_name": location.name,
                "operation": operation,
                "previous_stock": change.previous_stock,
                "new_stock": change.new_stock,
                "change": change.new_stock - change.previous_stock,
            }
            for location, operation, change in self.changes
        ]
        total_previous = sum(a["previous_stock"] for a in adjustments)
        total_new = sum(a["new_stock"] for a in adjustments)
        return {
            "product_id": self.product.id,
            "product_name": self.product.name,
            "adjustments": adjustments,
            "summary": {
                "locations_updated": len(adjustments),
                "total_previous_stock": total_previous,
                "total_new_stock": total_new,
                "total_change": total_new - total_previous,
            },
        }


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def get_stock(product_id: int, location_id: int) -> int:
    value = db.session.query(ProductLocation.stock).filter_by(
        product_id=product_id,
        location_id=location_id,
    ).scalar()
    return int(value or 0)


def _ensure_stock_row(product_id: int, location_id: int) -> ProductLocation:
    row = db.session.query(ProductLocation).filter_by(
        product_id=product_id,
        location_id=location_id,
    ).first()
    if row is None:
        row = ProductLocation(product_id=product_id, location_id=location_id, stock=0, is_active=True)
        db.session.add(row)
        db.session.flush()
    return row


def increment_stock(product_id: int, location_id: int, quantity: int) -> StockChange:
    """Atomically add `quantity` units. Does not commit."""
    row = _ensure_stock_row(product_id, location_id)
    db.session.execute(
        update(ProductLocation)
        .where(
            ProductLocation.product_id == product_id,
            ProductLocation.location_id == location_id,
        )
        .values(stock=ProductLocation.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(row, ["stock", "updated_at"])
    new_stock = get_stock(product_id, location_id)
    return StockChange(product_id, location_id, new_stock - quantity, new_stock)


def decrement_stock(
    product_id: int,
    location_id: int,
    quantity: int,
    *,
    allow_negative: bool = False,
    location_name: str | None = None,
) -> StockChange:
    """
    Atomically remove `quantity` units. Does not commit.

    Raises InsufficientStockError (and changes nothing) when the row holds
    fewer than `quantity` units, unless allow_negative is set.
    """
    row = _ensure_stock_row(product_id, location_id)
    stmt = update(ProductLocation).where(
        ProductLocation.product_id == product_id,
        ProductLocation.location_id == location_id,
    )
    if not allow_negative:
        stmt = stmt.where(ProductLocation.stock >= quantity)

    result = db.session.execute(
        stmt.values(stock=ProductLocation.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(row, ["stock", "updated_at"])

    if result.rowcount == 0:
        raise InsufficientStockError(
            product_id=product_id,
            location_id=location_id,
            current_stock=get_stock(product_id, location_id),
            requested_quantity=quantity,
            location_name=location_name,
        )

    new_stock = get_stock(product_id, location_id)
    return StockChange(product_id, location_id, new_stock + quantity, new_stock)


def record_audit(
    change: StockChange,
    *,
    adjustment_type: str,
    quantity: int,
    performed_by: str,
    reason: str | None = None,
    notes: str | None = None,
    reference: str | None = None,
) -> InventoryAudit:
    audit = InventoryAudit(
        product_id=change.product_id,
        location_id=change.location_id,
        adjustment_type=adjustment_type,
        quantity=quantity,
        previous_stock=change.previous_stock,
        new_stock=change.new_stock,
        reason=reason,
        notes=notes,
        reference=reference,
        performed_by=performed_by,
        created_at=utcnow(),
    )
    db.session.add(audit)
    db.session.flush()
    return audit


def adjust_stock(
    ctx: RequestContext,
    *,
    product_id: int,
    location_id: int,
    adjustment_type: str,
    quantity,
    reason: str,
    notes: str | None = None,
    allow_negative: bool = False,
) -> StockAdjustmentResult:
    """
    Add or remove stock for one (product, location) pair.

    add:    new = previous + quantity
    remove: new = previous - quantity; refused with InsufficientStockError
            when previous < quantity (unless allow_negative)
    """
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError("Invalid adjustment type. Must be 'add' or 'remove'")
    quantity = require_positive_int(quantity, "quantity")
    if reason is None or not str(reason).strip():
        raise ValidationError("reason is required")
    reason = str(reason).strip()

    def _op():
        get_product(product_id)
        location = get_location(location_id)
        ctx.require_access(location_id)

        if adjustment_type == ADJUSTMENT_ADD:
            change = increment_stock(product_id, location_id, quantity)
            signed = quantity
        else:
            change = decrement_stock(
                product_id,
                location_id,
                quantity,
                allow_negative=allow_negative,
                location_name=location.name,
            )
            signed = -quantity

        audit = record_audit(
            change,
            adjustment_type=adjustment_type,
            quantity=quantity,
            performed_by=ctx.actor_name,
            reason=reason,
            notes=notes,
        )

        db.session.commit()

        row = db.session.query(ProductLocation).filter_by(
            product_id=product_id,
            location_id=location_id,
        ).one()
        return StockAdjustmentResult(
            product_location=row,
            previous_stock=change.previous_stock,
            new_stock=change.new_stock,
            adjustment=signed,
            audit=audit,
        )

    return run_with_retry(_op)


def transfer_stock(
    ctx: RequestContext,
    *,
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity,
    reason: str | None = None,
    notes: str | None = None,
) -> TransferResult:
    """
    Move stock from one location to another in a single transaction.

    post(source) = pre(source) - quantity
    post(destination) = pre(destination) + quantity
    Rejected entirely (no writes) if pre(source) < quantity.
    """
    quantity = require_positive_int(quantity, "quantity")
    if from_location_id == to_location_id:
        raise ValidationError("Source and destination locations cannot be the same")

    def _op():
        product = get_product(product_id)
        if not product.is_active:
            raise ValidationError("Cannot transfer inactive product")

        source = get_active_location(from_location_id, label="Source location")
        destination = get_active_location(to_location_id, label="Destination location")
        ctx.require_access(from_location_id)

        out_change = decrement_stock(
            product_id,
            from_location_id,
            quantity,
            location_name=source.name,
        )
        in_change = increment_stock(product_id, to_location_id, quantity)

        transfer = StockTransfer(
            product_id=product_id,
            product_name=product.name,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            quantity=quantity,
            status="completed",
            reason=reason or f"Transfer of {product.name}",
            notes=notes,
            created_by=ctx.actor_name,
            created_at=utcnow(),
            completed_at=utcnow(),
        )
        db.session.add(transfer)
        db.session.flush()
        transfer.reference = f"TXF-{transfer.id:06d}"

        record_audit(
            out_change,
            adjustment_type=AUDIT_TRANSFER_OUT,
            quantity=quantity,
            performed_by=ctx.actor_name,
            reason=f"Transfer to {destination.name}",
            notes=notes,
            reference=transfer.reference,
        )
        record_audit(
            in_change,
            adjustment_type=AUDIT_TRANSFER_IN,
            quantity=quantity,
            performed_by=ctx.actor_name,
            reason=f"Transfer from {source.name}",
            notes=notes,
            reference=transfer.reference,
        )

        db.session.commit()
        return TransferResult(transfer=transfer, source=out_change, destination=in_change)

    return run_with_retry(_op)


def set_stock(product_id: int, location_id: int, new_stock: int) -> StockChange:
    """
    Overwrite stock with an absolute count. Does not commit.

    Compare-and-set on the value just read; a concurrent writer makes the
    UPDATE match nothing and StaleDataError sends the unit of work round
    run_with_retry again.
    """
    row = _ensure_stock_row(product_id, location_id)
    previous = get_stock(product_id, location_id)
    result = db.session.execute(
        update(ProductLocation)
        .where(
            ProductLocation.product_id == product_id,
            ProductLocation.location_id == location_id,
            ProductLocation.stock == previous,
        )
        .values(stock=new_stock)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(row, ["stock", "updated_at"])
    if result.rowcount == 0:
        raise StaleDataError(f"Stock for product {product_id} at location {location_id} changed concurrently")
    return StockChange(product_id, location_id, previous, new_stock)


def _parse_multi_adjustment(entry) -> tuple[int, str, int]:
    if not isinstance(entry, dict):
        raise ValidationError("Each adjustment must be an object")
    location_id = require_positive_int(entry.get("location_id"), "location_id")
    operation = entry.get("operation")
    if operation not in MULTI_ADJUSTMENT_OPERATIONS:
        raise ValidationError("Invalid operation. Must be 'add', 'remove' or 'set'")

    if operation == ADJUSTMENT_SET:
        value = entry.get("new_stock")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError("new_stock must be a non-negative integer")
        return location_id, operation, value
    return location_id, operation, require_positive_int(entry.get("quantity"), "quantity")


def adjust_stock_multi(
    ctx: RequestContext,
    *,
    product_id: int,
    adjustments,
    reason: str,
    notes: str | None = None,
) -> MultiLocationAdjustmentResult:
    """
    Apply one adjustment per location for a single product, all or nothing.

    Each entry is {"location_id", "operation", "quantity"} for add/remove or
    {"location_id", "operation": "set", "new_stock"}. Removals never go
    below zero; one refused entry rolls back every other entry.
    """
    if not isinstance(adjustments, list) or not adjustments:
        raise ValidationError("adjustments must be a non-empty list")
    parsed = [_parse_multi_adjustment(entry) for entry in adjustments]
    location_ids = [location_id for location_id, _, _ in parsed]
    if len(set(location_ids)) != len(location_ids):
        raise ValidationError("Each location may appear only once per request")
    if reason is None or not str(reason).strip():
        raise ValidationError("reason is required")
    reason = str(reason).strip()

    def _op():
        product = get_product(product_id)

        active = {
            loc.id: loc
            for loc in db.session.query(Location).filter(
                Location.id.in_(location_ids),
                Location.is_active.is_(True),
            ).all()
        }
        missing = [location_id for location_id in location_ids if location_id not in active]
        if missing:
            raise NotFoundError(
                f"Locations not found or inactive: {', '.join(str(i) for i in missing)}"
            )
        for location_id in location_ids:
            ctx.require_access(location_id)

        changes = []
        for location_id, operation, amount in parsed:
            location = active[location_id]
            if operation == ADJUSTMENT_ADD:
                change = increment_stock(product_id, location_id, amount)
            elif operation == ADJUSTMENT_REMOVE:
                change = decrement_stock(product_id, location_id, amount, location_name=location.name)
            else:
                change = set_stock(product_id, location_id, amount)

            record_audit(
                change,
                adjustment_type=operation,
                quantity=abs(change.new_stock - change.previous_stock),
                performed_by=ctx.actor_name,
                reason=reason,
                notes=notes or f"Multi-location adjustment: {operation} operation",
            )
            changes.append((location, operation, change))

        db.session.commit()
        return MultiLocationAdjustmentResult(product=product, changes=changes)

    return run_with_retry(_op)


def get_stock_levels(ctx: RequestContext, product_id: int) -> list[ProductLocation]:
    get_product(product_id)
    q = db.session.query(ProductLocation).filter_by(product_id=product_id)
    q = ctx.filter_by_location(q, ProductLocation.location_id)
    return q.order_by(ProductLocation.location_id.asc()).all()


def list_transfers(
    ctx: RequestContext,
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    limit: int = 50,
) -> list[StockTransfer]:
    q = db.session.query(StockTransfer)
    if product_id is not None:
        q = q.filter(StockTransfer.product_id == product_id)
    if location_id is not None:
        q = q.filter(or_(
            StockTransfer.from_location_id == location_id,
            StockTransfer.to_location_id == location_id,
        ))
    if ctx.is_restricted:
        allowed = sorted(ctx.location_ids)
        q = q.filter(or_(
            StockTransfer.from_location_id.in_(allowed),
            StockTransfer.to_location_id.in_(allowed),
        ))
    return q.order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc()).limit(limit).all()


def list_audit(
    ctx: RequestContext,
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    limit: int = 200,
) -> list[InventoryAudit]:
    q = db.session.query(InventoryAudit)
    if product_id is not None:
        q = q.filter(InventoryAudit.product_id == product_id)
    if location_id is not None:
        q = q.filter(InventoryAudit.location_id == location_id)
    q = ctx.filter_by_location(q, InventoryAudit.location_id)
    return q.order_by(InventoryAudit.created_at.desc(), InventoryAudit.id.desc()).limit(limit).all()


def low_stock(ctx: RequestContext, *, threshold: int, location_id: int | None = None) -> list[dict]:
    q = (
        db.session.query(ProductLocation, Product, Location)
        .join(Product, Product.id == ProductLocation.product_id)
        .join(Location, Location.id == ProductLocation.location_id)
        .filter(
            Product.is_active.is_(True),
            ProductLocation.is_active.is_(True),
            Location.is_active.is_(True),
            ProductLocation.stock <= threshold,
        )
    )
    if location_id is not None:
        q = q.filter(ProductLocation.location_id == location_id)
    q = ctx.filter_by_location(q, ProductLocation.location_id)

    rows = q.order_by(ProductLocation.stock.asc(), Product.name.asc()).all()
    return [
        {
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "location_id": location.id,
            "location_name": location.name,
            "stock": pl.stock,
            "threshold": threshold,
            "severity": "out_of_stock" if pl.stock <= 0 else "low",
        }
        for pl, product, location in rows
    ]


def stock_report(ctx: RequestContext) -> dict:
    """
    Per-location stock totals plus every row that violates stock >= 0.

    Negative rows can only exist where ALLOW_NEGATIVE_STOCK was used or
    data was written outside this service.
    """
    q = (
        db.session.query(
            Location.id,
            Location.name,
            func.count(ProductLocation.id),
            func.coalesce(func.sum(ProductLocation.stock), 0),
            func.coalesce(func.sum(ProductLocation.stock * Product.price_cents), 0),
            func.coalesce(func.sum(ProductLocation.stock * func.coalesce(Product.cost_cents, 0)), 0),
        )
        .join(ProductLocation, ProductLocation.location_id == Location.id)
        .join(Product, Product.id == ProductLocation.product_id)
        .filter(Location.is_active.is_(True), Product.is_active.is_(True))
        .group_by(Location.id, Location.name)
    )
    q = ctx.filter_by_location(q, Location.id)

    locations = [
        {
            "location_id": loc_id,
            "location_name": name,
            "product_count": int(count),
            "total_units": int(units),
            "retail_value_cents": int(retail),
            "cost_value_cents": int(cost),
        }
        for loc_id, name, count, units, retail, cost in q.order_by(Location.name.asc()).all()
    ]

    negative_q = db.session.query(ProductLocation).filter(ProductLocation.stock < 0)
    negative_q = ctx.filter_by_location(negative_q, ProductLocation.location_id)
    negative = [pl.to_dict() for pl in negative_q.order_by(ProductLocation.id.asc()).all()]

    return {
        "locations": locations,
        "total_units": sum(loc["total_units"] for loc in locations),
        "negative_stock": negative,
    }


def find_negative_stock() -> list[ProductLocation]:
    return db.session.query(ProductLocation).filter(ProductLocation.stock < 0).order_by(ProductLocation.id.asc()).all()
