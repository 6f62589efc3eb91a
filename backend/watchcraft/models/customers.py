from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

CUSTOMER_STATUSES = ("active", "inactive")


class Customer(db.Model):
    """
    Customer master data with a derived account summary.

    DERIVED FIELDS: purchases, service_count and net_value_cents are a
    materialized view over the sales and services rows. They are written by
    customer_service.recompute in one statement and are never the source of
    truth; a drifted row is repaired by recomputing it.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        db.UniqueConstraint("phone", name="uq_customers_phone"),
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_status_net_value", "status", "net_value_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    address = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    # Denormalized aggregates (recomputed from sales/services)
    purchases = db.Column(db.Integer, nullable=False, default=0)
    service_count = db.Column(db.Integer, nullable=False, default=0)
    net_value_cents = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_service_date = db.Column(db.DateTime(timezone=True), nullable=True)

    added_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    notes = db.relationship("CustomerNote", backref=db.backref("customer", lazy=True), lazy=True, order_by="CustomerNote.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} email={self.email!r} net_value_cents={self.net_value_cents}>"

    def account_summary(self) -> dict:
        return {
            "net_value_cents": self.net_value_cents,
            "purchases": self.purchases,
            "service_count": self.service_count,
        }

    def to_dict(self, include_notes: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "status": self.status,
            "purchases": self.purchases,
            "service_count": self.service_count,
            "net_value_cents": self.net_value_cents,
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "last_service_date": to_utc_z(self.last_service_date),
            "added_by_user_id": self.added_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_notes:
            data["notes"] = [n.to_dict() for n in self.notes]
        return data


class CustomerNote(db.Model):
    """Append-only note on a customer."""
    __tablename__ = "customer_notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    note = db.Column(db.Text, nullable=False)
    added_by_user_id = db.Column(db.Integer, nullable=True)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "note": self.note,
            "added_by_user_id": self.added_by_user_id,
            "added_at": to_utc_z(self.added_at),
        }
