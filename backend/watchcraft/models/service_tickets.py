from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, add_months

SERVICE_PENDING = "pending"
SERVICE_IN_PROGRESS = "in-progress"
SERVICE_ON_HOLD = "on-hold"
SERVICE_COMPLETED = "completed"
SERVICE_CANCELLED = "cancelled"
SERVICE_STATUSES = (
    SERVICE_PENDING,
    SERVICE_IN_PROGRESS,
    SERVICE_ON_HOLD,
    SERVICE_COMPLETED,
    SERVICE_CANCELLED,
)

GENDERS = ("Male", "Female")
CASE_TYPES = ("Steel", "Gold Tone", "Fiber")
STRAP_TYPES = ("Leather", "Fiber", "Steel", "Gold Plated")


class Service(db.Model):
    """
    Watch repair ticket.

    NET VALUE: Only a completed ticket contributes to its customer's
    net value, using final_cost_cents when set and cost_cents otherwise.
    """
    __tablename__ = "services"
    __table_args__ = (
        db.CheckConstraint("cost_cents >= 0", name="cost_non_negative"),
        db.CheckConstraint("warranty_period >= 0 AND warranty_period <= 60", name="warranty_range"),
        db.Index("ix_services_customer_status", "customer_id", "status"),
        db.Index("ix_services_brand_model", "brand", "model"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    brand = db.Column(db.String(128), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    dial_color = db.Column(db.String(64), nullable=False)
    movement_no = db.Column(db.String(64), nullable=False)
    gender = db.Column(db.String(16), nullable=False)
    case_type = db.Column(db.String(16), nullable=False)
    strap_type = db.Column(db.String(16), nullable=False)
    issue = db.Column(db.Text, nullable=False)

    cost_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SERVICE_PENDING, index=True)

    service_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery = db.Column(db.DateTime(timezone=True), nullable=True)

    # Completion
    final_cost_cents = db.Column(db.Integer, nullable=True)
    warranty_period = db.Column(db.Integer, nullable=False, default=0)
    completion_description = db.Column(db.Text, nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    held_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("services", lazy=True))
    notes = db.relationship("ServiceNote", backref=db.backref("service", lazy=True), lazy=True, order_by="ServiceNote.id")
    status_history = db.relationship(
        "ServiceStatusChange",
        backref=db.backref("service", lazy=True),
        lazy=True,
        order_by="ServiceStatusChange.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def watch_name(self) -> str:
        return f"{self.brand} {self.model}"

    @property
    def billable_cents(self) -> int:
        return self.final_cost_cents if self.final_cost_cents is not None else self.cost_cents

    @property
    def warranty_expires_at(self):
        if self.actual_delivery is None or not self.warranty_period:
            return None
        return add_months(self.actual_delivery, self.warranty_period)

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "watch_name": self.watch_name,
            "brand": self.brand,
            "model": self.model,
            "dial_color": self.dial_color,
            "movement_no": self.movement_no,
            "gender": self.gender,
            "case_type": self.case_type,
            "strap_type": self.strap_type,
            "issue": self.issue,
            "cost_cents": self.cost_cents,
            "final_cost_cents": self.final_cost_cents,
            "status": self.status,
            "service_date": to_utc_z(self.service_date),
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "actual_delivery": to_utc_z(self.actual_delivery),
            "warranty_period": self.warranty_period,
            "warranty_expires_at": to_utc_z(self.warranty_expires_at),
            "completion_description": self.completion_description,
            "started_at": to_utc_z(self.started_at),
            "held_at": to_utc_z(self.held_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_history:
            data["notes"] = [n.to_dict() for n in self.notes]
            data["status_history"] = [h.to_dict() for h in self.status_history]
        return data


class ServiceNote(db.Model):
    """Append-only note on a service ticket."""
    __tablename__ = "service_notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    note = db.Column(db.Text, nullable=False)
    added_by_user_id = db.Column(db.Integer, nullable=True)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "note": self.note,
            "added_by_user_id": self.added_by_user_id,
            "added_at": to_utc_z(self.added_at),
        }


class ServiceStatusChange(db.Model):
    """
    Append-only status history.

    IMMUTABLE: One row per accepted transition, including the initial
    'pending' row written at creation (from_status NULL).
    """
    __tablename__ = "service_status_changes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    changed_by_user_id = db.Column(db.Integer, nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by_user_id": self.changed_by_user_id,
            "changed_at": to_utc_z(self.changed_at),
        }
