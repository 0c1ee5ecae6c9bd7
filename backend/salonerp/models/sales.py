from __future__ import annotations

from ..extensions import db
from salonerp.time_utils import to_utc_z


TRANSACTION_TYPE_SERVICE = "service_sale"
TRANSACTION_TYPE_PRODUCT = "product_sale"
TRANSACTION_TYPE_CONSOLIDATED = "consolidated_sale"

ITEM_TYPE_SERVICE = "service"
ITEM_TYPE_PRODUCT = "product"

PAYMENT_METHODS = {"cash", "card", "mobile", "bank_transfer", "gift_card"}


class Transaction(db.Model):
    """
    A completed POS sale.

    A consolidated transaction itemizes both services and products in a
    single record. Rows are written once at checkout and never updated.

    Amount fields (cents):
    - original_service_amount_cents: services before discount
    - service_amount_cents: services after discount
    - product_amount_cents: products (never discounted)
    - total_cents = service_amount_cents + product_amount_cents
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_location_created", "location_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(32), nullable=True, unique=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=True, index=True)
    staff_name = db.Column(db.String(255), nullable=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id"), nullable=True, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    source = db.Column(db.String(32), nullable=False, default="pos")
    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")

    original_service_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    service_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    product_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_percentage = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(255), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} type={self.type} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "location_id": self.location_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "appointment_id": self.appointment_id,
            "type": self.type,
            "source": self.source,
            "payment_method": self.payment_method,
            "status": self.status,
            "original_service_amount_cents": self.original_service_amount_cents,
            "service_amount_cents": self.service_amount_cents,
            "product_amount_cents": self.product_amount_cents,
            "discount_percentage": self.discount_percentage,
            "discount_amount_cents": self.discount_amount_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class TransactionItem(db.Model):
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    transaction = db.relationship("Transaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.item_type,
            "service_id": self.service_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "total_price_cents": self.total_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
        }
