# backend/salonerp/services/product_service.py
"""
Products Service

Product master data is location-independent. Stock lives on
ProductLocation rows and only changes through inventory_service, so
initial stock supplied at creation is booked as an "add" adjustment with
an audit row.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..context import RequestContext
from ..models import Product, ProductLocation
from ..validation import ValidationError, NotFoundError, ConflictError, enforce_rules_product
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import ADJUSTMENT_ADD, increment_stock, record_audit
from .location_service import get_active_location

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "category", "type",
    "price_cents", "cost_cents", "is_retail", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_sku(sku: str | None, *, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"SKU '{sku}' already exists")


def _parse_initial_stock(initial_stock) -> list[tuple[int, int]]:
    """[{"location_id": 1, "stock": 10}, ...] -> [(1, 10), ...]"""
    if initial_stock is None:
        return []
    if not isinstance(initial_stock, list):
        raise ValidationError("initial_stock must be a list")
    entries: dict[int, int] = {}
    for entry in initial_stock:
        if not isinstance(entry, dict):
            raise ValidationError("initial_stock entries must be objects")
        location_id = entry.get("location_id")
        stock = entry.get("stock", 0)
        if isinstance(location_id, bool) or not isinstance(location_id, int):
            raise ValidationError("initial_stock.location_id must be an integer")
        if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
            raise ValidationError("initial_stock.stock must be a non-negative integer")
        entries[location_id] = entries.get(location_id, 0) + stock
    return sorted(entries.items())


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_products(
    ctx: RequestContext,
    *,
    location_id: int | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with per-location stock.

    With location_id, only products stocked at that location are returned
    and each item's "stock" is the count there. Stock rows outside the
    context's locations are hidden.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if location_id is not None:
        ctx.require_access(location_id)
        base_query = base_query.join(ProductLocation, ProductLocation.product_id == Product.id).filter(
            ProductLocation.location_id == location_id,
            ProductLocation.is_active.is_(True),
        )
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    def _serialize(p: Product) -> dict:
        data = p.to_dict()
        rows = [pl for pl in p.locations if pl.is_active and ctx.can_access(pl.location_id)]
        data["locations"] = [pl.to_dict() for pl in sorted(rows, key=lambda pl: pl.location_id)]
        data["total_stock"] = sum(pl.stock for pl in rows)
        if location_id is not None:
            data["stock"] = next((pl.stock for pl in rows if pl.location_id == location_id), 0)
        return data

    if page is None:
        products = base_query.all()
        return {
            "items": [_serialize(p) for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [_serialize(p) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(ctx: RequestContext, *, patch: dict, initial_stock=None) -> Product:
    """
    Create a product, optionally stocking it at one or more locations.

    initial_stock: [{"location_id": int, "stock": int}, ...]
    """
    enforce_rules_product(patch)
    entries = _parse_initial_stock(initial_stock)

    def _op():
        _check_sku(patch.get("sku"))

        product = Product(**patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"SKU '{patch.get('sku')}' already exists")

        for location_id, stock in entries:
            get_active_location(location_id)
            ctx.require_access(location_id)
            change = increment_stock(product.id, location_id, stock)
            if stock > 0:
                record_audit(
                    change,
                    adjustment_type=ADJUSTMENT_ADD,
                    quantity=stock,
                    performed_by=ctx.actor_name,
                    reason="Initial stock",
                )

        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, patch: dict) -> Product:
    """Update master data. Stock is not writable here; use inventory adjustments."""
    enforce_rules_product(patch)

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found")
        if "sku" in patch:
            _check_sku(patch["sku"], exclude_id=product_id)

        apply_product_patch(product, patch)
        db.session.commit()
        return product

    return run_with_retry(_op)
