from __future__ import annotations

from ..extensions import db
from salonerp.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data (retail and professional/back-bar products).

    Stock is NOT stored here. The per-location count lives on
    ProductLocation, one row per (product, location).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)
    type = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=True)

    is_retail = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    locations = db.relationship("ProductLocation", back_populates="product", lazy=True)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    @property
    def total_stock(self) -> int:
        return sum(pl.stock for pl in self.locations if pl.is_active)

    def to_dict(self, *, include_stock: bool = False) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "type": self.type,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "is_retail": self.is_retail,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_stock:
            data["locations"] = [pl.to_dict() for pl in sorted(self.locations, key=lambda pl: pl.location_id)]
            data["total_stock"] = self.total_stock
        return data


class ProductLocation(db.Model):
    """
    Stock of one product at one location.

    Writes to `stock` go through conditional UPDATE statements in
    inventory_service, never through read-modify-write on a loaded row.
    """
    __tablename__ = "product_locations"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_product_locations_product_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="locations")
    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "stock": self.stock,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryAudit(db.Model):
    """
    Append-only record of every stock mutation.

    adjustment_type: add, remove, set, transfer_out, transfer_in, sale
    quantity is never negative; the direction follows from the type, or
    from previous_stock and new_stock for "set".
    """
    __tablename__ = "inventory_audits"
    __table_args__ = (
        db.Index("ix_inventory_audits_product_location", "product_id", "location_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    adjustment_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    # TXF-/SALE- reference of the document that caused the movement
    reference = db.Column(db.String(64), nullable=True, index=True)
    performed_by = db.Column(db.String(255), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "adjustment_type": self.adjustment_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "notes": self.notes,
            "reference": self.reference,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }


class StockTransfer(db.Model):
    """A completed movement of stock between two locations."""
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.Index("ix_stock_transfers_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), nullable=True, unique=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")
    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(255), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")
    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product.sku if self.product else None,
            "from_location": {
                "id": self.from_location_id,
                "name": self.from_location.name if self.from_location else None,
            },
            "to_location": {
                "id": self.to_location_id,
                "name": self.to_location.name if self.to_location else None,
            },
            "quantity": self.quantity,
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
