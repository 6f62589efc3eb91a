from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ITEM_TYPES = ("Watch", "Clock", "Timepiece", "Strap", "Battery")
OUTLETS = ("Semmancheri", "Navalur", "Padur")

STATUS_AVAILABLE = "available"
STATUS_SOLD = "sold"
STATUS_OUT_OF_STOCK = "out-of-stock"
ITEM_STATUSES = (STATUS_AVAILABLE, STATUS_SOLD, STATUS_OUT_OF_STOCK)

DEFAULT_SIZE = "-"


class InventoryItem(db.Model):
    """
    A stocked line at one outlet.

    QUANTITY: Stored on the row and mutated only through the inventory
    service's conditional updates, never read-modify-write.

    STATUS: Maintained incrementally, not recomputed on read. A sale that
    empties the item yields 'sold'; any other path to zero yields
    'out-of-stock'. Both flip back to 'available' once stock returns.

    CODE: Business key, uppercased and immutable once created.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_inventory_items_code"),
        db.CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        db.Index("ix_inventory_items_brand_model", "brand", "model"),
        db.Index("ix_inventory_items_outlet_status", "outlet", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(64), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    brand = db.Column(db.String(128), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    size = db.Column(db.String(32), nullable=False, default=DEFAULT_SIZE)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    outlet = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_AVAILABLE, index=True)

    total_sold = db.Column(db.Integer, nullable=False, default=0)
    last_sale_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Soft delete: rows stay for sale history
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_user_id = db.Column(db.Integer, nullable=True)

    added_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    movements = db.relationship(
        "InventoryMovement",
        backref=db.backref("item", lazy=True),
        lazy=True,
        order_by="InventoryMovement.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} code={self.code!r} qty={self.quantity} outlet={self.outlet!r}>"

    def to_dict(self, include_movements: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "type": self.type,
            "brand": self.brand,
            "model": self.model,
            "size": self.size,
            "description": self.description,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "outlet": self.outlet,
            "status": self.status,
            "total_sold": self.total_sold,
            "last_sale_date": to_utc_z(self.last_sale_date),
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "added_by_user_id": self.added_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_movements:
            data["movement_history"] = [m.to_dict() for m in self.movements]
        return data


class InventoryMovement(db.Model):
    """
    Outlet movement record.

    IMMUTABLE: Rows are appended, never updated or deleted. from_outlet is
    NULL for the synthetic initial-stock record.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_item_date", "item_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False)
    from_outlet = db.Column(db.String(32), nullable=True)
    to_outlet = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.String(255), nullable=False, default="Stock Transfer")
    moved_by_user_id = db.Column(db.Integer, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "date": to_utc_z(self.date),
            "from_outlet": self.from_outlet,
            "to_outlet": self.to_outlet,
            "reason": self.reason,
            "moved_by_user_id": self.moved_by_user_id,
            "timestamp": to_utc_z(self.timestamp),
        }
