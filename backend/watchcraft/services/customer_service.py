# Overview: Service-layer operations for customers; derived account summary and master data.

# backend/watchcraft/services/customer_service.py

from __future__ import annotations

import re

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, CustomerNote, Sale, Service
from ..models.customers import CUSTOMER_STATUSES
from ..models.service_tickets import SERVICE_COMPLETED
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    ValidationError,
    require_choice,
)
from .concurrency import run_in_transaction

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")
PHONE_PATTERN = re.compile(r"^\+?[0-9\-\s()]{10,15}$")

CUSTOMER_FIELDS = {"name", "email", "phone", "address", "status"}
DERIVED_FIELDS = {"purchases", "service_count", "net_value_cents", "last_purchase_date", "last_service_date"}

TOP_CUSTOMERS_LIMIT = 5


def _maybe_commit(op, commit: bool):
    if commit:
        return run_in_transaction(op)
    return op()


def _load_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def get_customer(customer_id: int) -> Customer:
    return _load_customer(customer_id)


# ---------------------------------------------------------------------------
# Account aggregation
# ---------------------------------------------------------------------------

def _summary_statement(customer_id: int):
    """
    One SELECT yielding every source figure for a customer.

    Scalar subqueries keep the sales and services reads inside a single
    statement, so the sums come from one snapshot.
    """
    sales_total = (
        select(func.coalesce(func.sum(Sale.total_amount_cents), 0))
        .where(Sale.customer_id == customer_id)
        .scalar_subquery()
    )
    sales_count = select(func.count(Sale.id)).where(Sale.customer_id == customer_id).scalar_subquery()
    last_sale = select(func.max(Sale.created_at)).where(Sale.customer_id == customer_id).scalar_subquery()

    completed_value = (
        select(func.coalesce(func.sum(func.coalesce(Service.final_cost_cents, Service.cost_cents)), 0))
        .where(Service.customer_id == customer_id, Service.status == SERVICE_COMPLETED)
        .scalar_subquery()
    )
    service_count = select(func.count(Service.id)).where(Service.customer_id == customer_id).scalar_subquery()
    last_service = select(func.max(Service.service_date)).where(Service.customer_id == customer_id).scalar_subquery()

    return select(
        Customer.id,
        sales_total.label("sales_total"),
        sales_count.label("sales_count"),
        last_sale.label("last_sale"),
        completed_value.label("completed_value"),
        service_count.label("service_count"),
        last_service.label("last_service"),
    ).where(Customer.id == customer_id)


def recompute(customer_id: int, *, commit: bool = True) -> dict:
    """
    Rebuild a customer's derived summary from its sales and services.

    Idempotent; the previous cached values are ignored. Returns the new
    {net_value_cents, purchases, service_count}.
    """
    def _op():
        row = db.session.execute(_summary_statement(customer_id)).one_or_none()
        if row is None:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})

        customer = _load_customer(customer_id)
        customer.net_value_cents = int(row.sales_total) + int(row.completed_value)
        customer.purchases = int(row.sales_count)
        customer.service_count = int(row.service_count)
        customer.last_purchase_date = row.last_sale
        customer.last_service_date = row.last_service
        db.session.flush()
        return customer.account_summary()

    return _maybe_commit(_op, commit)


def _nudge(customer_id: int, values: dict) -> Customer:
    stmt = (
        update(Customer)
        .where(Customer.id == customer_id)
        .values(version_id=Customer.version_id + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount == 0:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return db.session.get(Customer, customer_id, populate_existing=True)


def _floored_decrement(column):
    return case((column > 0, column - 1), else_=0)


# Counter nudges never touch net_value_cents; recompute is the system of record.

def increment_purchases(customer_id: int, *, commit: bool = True) -> Customer:
    return _maybe_commit(
        lambda: _nudge(customer_id, {"purchases": Customer.purchases + 1, "last_purchase_date": utcnow()}),
        commit,
    )


def decrement_purchases(customer_id: int, *, commit: bool = True) -> Customer:
    return _maybe_commit(
        lambda: _nudge(customer_id, {"purchases": _floored_decrement(Customer.purchases)}),
        commit,
    )


def increment_services(customer_id: int, *, commit: bool = True) -> Customer:
    return _maybe_commit(
        lambda: _nudge(customer_id, {"service_count": Customer.service_count + 1, "last_service_date": utcnow()}),
        commit,
    )


def decrement_services(customer_id: int, *, commit: bool = True) -> Customer:
    return _maybe_commit(
        lambda: _nudge(customer_id, {"service_count": _floored_decrement(Customer.service_count)}),
        commit,
    )


def recompute_all() -> list[dict]:
    """
    Drift repair sweep over every customer.

    Each customer is recomputed in its own transaction. Returns one entry
    per customer whose stored summary differed from the recomputed one.
    """
    repaired = []
    customer_ids = [cid for (cid,) in db.session.query(Customer.id).order_by(Customer.id).all()]
    for customer_id in customer_ids:
        before = _load_customer(customer_id).account_summary()
        after = recompute(customer_id)
        if before != after:
            repaired.append({"customer_id": customer_id, "before": before, "after": after})
    return repaired


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------

def _clean_contact(data: dict, *, partial: bool) -> dict:
    fields = {}

    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("Customer name is required", details={"field": "name"})
        if len(name) > 100:
            raise ValidationError("Name cannot exceed 100 characters", details={"field": "name"})
        fields["name"] = name

    if "email" in data or not partial:
        email = str(data.get("email") or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Please enter a valid email", details={"field": "email"})
        fields["email"] = email

    if "phone" in data or not partial:
        phone = str(data.get("phone") or "").strip()
        if not PHONE_PATTERN.match(phone):
            raise ValidationError("Please enter a valid phone number", details={"field": "phone"})
        fields["phone"] = phone

    if "address" in data:
        address = str(data["address"]).strip() if data["address"] is not None else None
        if address and len(address) > 500:
            raise ValidationError("Address cannot exceed 500 characters", details={"field": "address"})
        fields["address"] = address or None

    if "status" in data:
        fields["status"] = require_choice("status", data["status"], CUSTOMER_STATUSES)

    return fields


def _ensure_unique_contact(fields: dict, *, exclude_id: int | None = None) -> None:
    for key in ("email", "phone"):
        if key not in fields:
            continue
        q = db.session.query(Customer.id).filter(getattr(Customer, key) == fields[key])
        if exclude_id is not None:
            q = q.filter(Customer.id != exclude_id)
        if q.first():
            raise DuplicateKeyError(
                f"A customer with this {key} already exists",
                details={"field": key, "value": fields[key]},
            )


def create_customer(data: dict, actor_id: int | None = None) -> Customer:
    derived = DERIVED_FIELDS & set(data)
    if derived:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(derived))}")
    fields = _clean_contact(data, partial=False)

    def _op():
        _ensure_unique_contact(fields)
        customer = Customer(added_by_user_id=actor_id, **fields)
        db.session.add(customer)
        db.session.flush()
        return customer

    try:
        return run_in_transaction(_op)
    except IntegrityError as exc:
        raise DuplicateKeyError("A customer with this email or phone already exists") from exc


def update_customer(customer_id: int, data: dict) -> Customer:
    """Edit contact fields; the derived summary is not writable."""
    unknown = set(data) - CUSTOMER_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    fields = _clean_contact(data, partial=True)

    def _op():
        customer = _load_customer(customer_id)
        _ensure_unique_contact(fields, exclude_id=customer.id)
        for key, value in fields.items():
            setattr(customer, key, value)
        db.session.flush()
        return customer

    try:
        return run_in_transaction(_op)
    except IntegrityError as exc:
        raise DuplicateKeyError("A customer with this email or phone already exists") from exc


def delete_customer(customer_id: int) -> None:
    """Hard delete, refused while any sale or service references the customer."""
    def _op():
        customer = _load_customer(customer_id)
        sales = db.session.query(func.count(Sale.id)).filter(Sale.customer_id == customer_id).scalar()
        services = db.session.query(func.count(Service.id)).filter(Service.customer_id == customer_id).scalar()
        if sales or services:
            raise ConflictError(
                "Customer has sales or services and cannot be deleted",
                details={"customer_id": customer_id, "sales": sales, "services": services},
            )
        for note in list(customer.notes):
            db.session.delete(note)
        db.session.delete(customer)
        db.session.flush()

    run_in_transaction(_op)


def add_note(customer_id: int, note: str, actor_id: int | None = None) -> CustomerNote:
    text = str(note).strip() if note is not None else ""
    if not text:
        raise ValidationError("note is required", details={"field": "note"})

    def _op():
        customer = _load_customer(customer_id)
        entry = CustomerNote(customer_id=customer.id, note=text, added_by_user_id=actor_id)
        db.session.add(entry)
        db.session.flush()
        return entry

    return run_in_transaction(_op)


def list_customers(
    *,
    search: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Customer], int]:
    q = db.session.query(Customer)
    if status:
        q = q.filter(Customer.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))
    total = q.count()
    customers = q.order_by(Customer.created_at.desc(), Customer.id.desc()).limit(limit).offset(offset).all()
    return customers, total


def get_customer_stats() -> dict:
    totals = db.session.query(
        func.count(Customer.id),
        func.coalesce(func.sum(Customer.net_value_cents), 0),
        func.avg(Customer.net_value_cents),
    ).one()
    active = db.session.query(func.count(Customer.id)).filter(Customer.status == "active").scalar()
    top = (
        db.session.query(Customer)
        .order_by(Customer.net_value_cents.desc(), Customer.id.asc())
        .limit(TOP_CUSTOMERS_LIMIT)
        .all()
    )

    total_customers, total_value, avg_value = totals
    return {
        "total_customers": int(total_customers),
        "active_customers": int(active or 0),
        "total_net_value_cents": int(total_value or 0),
        "average_net_value_cents": int(round(avg_value)) if avg_value is not None else 0,
        "top_customers": [
            {"id": c.id, "name": c.name, "net_value_cents": c.net_value_cents, "purchases": c.purchases}
            for c in top
        ],
    }
