from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

DISCOUNT_TYPES = ("none", "percentage", "amount")
PAYMENT_METHODS = ("Cash", "Card", "UPI", "Bank Transfer", "Cheque")
SALE_STATUSES = ("completed",)


class Sale(db.Model):
    """
    A single-item sale: an immutable financial event once created.

    AMOUNTS (cents):
    - subtotal_cents = price_cents * quantity
    - discount_amount_cents is capped at subtotal_cents
    - total_amount_cents = subtotal_cents - discount_amount_cents (never negative)

    discount_value is basis points for 'percentage', cents for 'amount'.

    Creating or deleting a sale moves stock and recomputes the customer in
    the same database transaction (see sales_service).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("discount_amount_cents <= subtotal_cents", name="discount_capped"),
        db.CheckConstraint("total_amount_cents >= 0", name="total_non_negative"),
        db.Index("ix_sales_customer_created", "customer_id", "created_at"),
        db.Index("ix_sales_payment_created", "payment_method", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    discount_type = db.Column(db.String(16), nullable=False, default="none")
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    updated_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    item = db.relationship("InventoryItem", backref=db.backref("sales", lazy=True))
    notes = db.relationship("SaleNote", backref=db.backref("sale", lazy=True), lazy=True, order_by="SaleNote.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} customer_id={self.customer_id} total_amount_cents={self.total_amount_cents}>"

    def to_dict(self, include_notes: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "inventory_id": self.inventory_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_amount_cents": self.discount_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_notes:
            data["notes"] = [n.to_dict() for n in self.notes]
        return data


class SaleNote(db.Model):
    """Append-only note on a sale."""
    __tablename__ = "sale_notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    note = db.Column(db.Text, nullable=False)
    added_by_user_id = db.Column(db.Integer, nullable=True)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "note": self.note,
            "added_by_user_id": self.added_by_user_id,
            "added_at": to_utc_z(self.added_at),
        }
