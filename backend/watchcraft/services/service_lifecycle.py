# Overview: Service-layer operations for repair tickets; status state machine and completion.

# backend/watchcraft/services/service_lifecycle.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Service, ServiceNote, ServiceStatusChange
from ..models.service_tickets import (
    CASE_TYPES,
    GENDERS,
    SERVICE_CANCELLED,
    SERVICE_COMPLETED,
    SERVICE_IN_PROGRESS,
    SERVICE_ON_HOLD,
    SERVICE_PENDING,
    SERVICE_STATUSES,
    STRAP_TYPES,
)
from ..time_utils import next_day_start, parse_iso_datetime, utcnow
from ..validation import (
    NotFoundError,
    ValidationError,
    enforce_warranty_months,
    require_choice,
    require_int,
)
from . import customer_service
from .concurrency import run_in_transaction
"""
Service Lifecycle Invariants (authoritative)

- update_status only moves along ALLOWED_TRANSITIONS. complete_service
  also closes a pending ticket directly; cancelled and completed tickets
  cannot be completed again.
- Every accepted change appends one ServiceStatusChange row.
- Only 'completed' tickets count toward the customer's net value, so any
  change that enters or leaves 'completed' (including cancelling a
  completed ticket, moving it to another customer, or deleting it)
  recomputes the affected customer(s) in the same transaction.
"""

ALLOWED_TRANSITIONS = {
    SERVICE_PENDING: {SERVICE_IN_PROGRESS, SERVICE_ON_HOLD, SERVICE_CANCELLED},
    SERVICE_IN_PROGRESS: {SERVICE_ON_HOLD, SERVICE_COMPLETED, SERVICE_CANCELLED},
    SERVICE_ON_HOLD: {SERVICE_IN_PROGRESS, SERVICE_COMPLETED, SERVICE_CANCELLED},
    SERVICE_COMPLETED: {SERVICE_CANCELLED},
    SERVICE_CANCELLED: set(),
}

# Tickets still being worked on; complete_service accepts any of them
OPEN_STATUSES = {SERVICE_PENDING, SERVICE_IN_PROGRESS, SERVICE_ON_HOLD}
INCOMPLETE_LIMIT = 5

REQUIRED_FIELDS = (
    "customer_id", "brand", "model", "dial_color", "movement_no",
    "gender", "case_type", "strap_type", "issue", "cost_cents",
)
TEXT_FIELDS = ("brand", "model", "dial_color", "movement_no", "issue")
EDITABLE_FIELDS = set(TEXT_FIELDS) | {"gender", "case_type", "strap_type", "cost_cents", "estimated_delivery"}


class InvalidStatusError(ValidationError):
    """Status is not one of SERVICE_STATUSES."""


class InvalidTransitionError(InvalidStatusError):
    """Status is valid but not reachable from the current one."""


def _load_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found", details={"service_id": service_id})
    return service


def get_service(service_id: int) -> Service:
    return _load_service(service_id)


def _coerce_datetime(field: str, value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be an ISO-8601 datetime") from exc


def _require_text(field: str, value) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required", details={"field": field})
    return text


def _transition(service: Service, new_status: str, actor_id: int | None, *, completing: bool = False) -> str:
    """Validate and apply one status change; returns the previous status."""
    if new_status not in SERVICE_STATUSES:
        raise InvalidStatusError(
            f"Status must be one of: {', '.join(SERVICE_STATUSES)}",
            details={"status": new_status},
        )
    old_status = service.status
    allowed = ALLOWED_TRANSITIONS[old_status]
    if completing and old_status in OPEN_STATUSES:
        allowed = allowed | {SERVICE_COMPLETED}
    if new_status not in allowed:
        raise InvalidTransitionError(
            f"Cannot change status from {old_status} to {new_status}",
            details={"from_status": old_status, "to_status": new_status},
        )

    now = utcnow()
    if new_status == SERVICE_IN_PROGRESS and service.started_at is None:
        service.started_at = now
    elif new_status == SERVICE_ON_HOLD:
        service.held_at = now
    elif new_status == SERVICE_COMPLETED:
        service.completed_at = now
        if service.actual_delivery is None:
            service.actual_delivery = now
    elif new_status == SERVICE_CANCELLED:
        service.cancelled_at = now

    service.status = new_status
    db.session.add(ServiceStatusChange(
        service_id=service.id,
        from_status=old_status,
        to_status=new_status,
        changed_by_user_id=actor_id,
        changed_at=now,
    ))
    return old_status


def _touches_completed(old_status: str, new_status: str) -> bool:
    return SERVICE_COMPLETED in (old_status, new_status)


def create_service(data: dict, actor_id: int | None = None) -> Service:
    """Open a pending ticket; the customer's service_count includes it at once."""
    missing = [f for f in REQUIRED_FIELDS if data.get(f) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    fields = {f: _require_text(f, data[f]) for f in TEXT_FIELDS}
    fields["gender"] = require_choice("gender", data["gender"], GENDERS)
    fields["case_type"] = require_choice("case_type", data["case_type"], CASE_TYPES)
    fields["strap_type"] = require_choice("strap_type", data["strap_type"], STRAP_TYPES)
    fields["cost_cents"] = require_int("cost_cents", data["cost_cents"], minimum=0)
    fields["estimated_delivery"] = _coerce_datetime("estimated_delivery", data.get("estimated_delivery"))
    service_date = _coerce_datetime("service_date", data.get("service_date"))
    customer_id = data["customer_id"]

    def _op():
        customer_service.get_customer(customer_id)
        service = Service(
            customer_id=customer_id,
            status=SERVICE_PENDING,
            created_by_user_id=actor_id,
            service_date=service_date or utcnow(),
            **fields,
        )
        db.session.add(service)
        db.session.flush()

        db.session.add(ServiceStatusChange(
            service_id=service.id,
            from_status=None,
            to_status=SERVICE_PENDING,
            changed_by_user_id=actor_id,
        ))
        db.session.flush()

        customer_service.recompute(customer_id, commit=False)
        return service

    return run_in_transaction(_op)


def update_status(service_id: int, new_status: str, actor_id: int | None = None) -> Service:
    """
    Move a ticket to `new_status`.

    Raises InvalidStatusError for an unknown status and
    InvalidTransitionError for one the current status cannot reach.
    """
    def _op():
        service = _load_service(service_id)
        old_status = _transition(service, new_status, actor_id)
        db.session.flush()
        if _touches_completed(old_status, new_status):
            customer_service.recompute(service.customer_id, commit=False)
        return service

    return run_in_transaction(_op)


def complete_service(service_id: int, completion: dict, actor_id: int | None = None) -> Service:
    """
    Close a ticket as completed.

    completion keys:
    - description (required, non-blank)
    - final_cost_cents (optional, >= 0; billed instead of cost_cents)
    - warranty_period (months, 0..60, default 0)
    - actual_delivery (optional, defaults to now)
    """
    completion = completion or {}
    description = _require_text("description", completion.get("description"))
    final_cost = completion.get("final_cost_cents")
    if final_cost is not None:
        require_int("final_cost_cents", final_cost, minimum=0)
    warranty = enforce_warranty_months(completion.get("warranty_period", 0))
    delivered_at = _coerce_datetime("actual_delivery", completion.get("actual_delivery"))

    def _op():
        service = _load_service(service_id)

        service.completion_description = description
        service.final_cost_cents = final_cost
        service.warranty_period = warranty
        service.actual_delivery = delivered_at or utcnow()
        _transition(service, SERVICE_COMPLETED, actor_id, completing=True)

        db.session.add(ServiceNote(
            service_id=service.id,
            note=f"Service completed: {description}",
            added_by_user_id=actor_id,
        ))
        db.session.flush()

        customer_service.recompute(service.customer_id, commit=False)
        return service

    return run_in_transaction(_op)


def update_service(service_id: int, data: dict, actor_id: int | None = None) -> Service:
    """Edit watch details, issue or quoted cost. Status and customer have their own operations."""
    unknown = set(data) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    fields = {}
    for f in TEXT_FIELDS:
        if f in data:
            fields[f] = _require_text(f, data[f])
    if "gender" in data:
        fields["gender"] = require_choice("gender", data["gender"], GENDERS)
    if "case_type" in data:
        fields["case_type"] = require_choice("case_type", data["case_type"], CASE_TYPES)
    if "strap_type" in data:
        fields["strap_type"] = require_choice("strap_type", data["strap_type"], STRAP_TYPES)
    if "cost_cents" in data:
        fields["cost_cents"] = require_int("cost_cents", data["cost_cents"], minimum=0)
    if "estimated_delivery" in data:
        fields["estimated_delivery"] = _coerce_datetime("estimated_delivery", data["estimated_delivery"])

    def _op():
        service = _load_service(service_id)
        for key, value in fields.items():
            setattr(service, key, value)
        db.session.flush()
        if service.status == SERVICE_COMPLETED and "cost_cents" in fields:
            customer_service.recompute(service.customer_id, commit=False)
        return service

    return run_in_transaction(_op)


def reassign_customer(service_id: int, customer_id: int, actor_id: int | None = None) -> Service:
    """Move a ticket to another customer; both customers are recomputed."""
    def _op():
        service = _load_service(service_id)
        customer_service.get_customer(customer_id)
        old_customer_id = service.customer_id
        if old_customer_id == customer_id:
            return service

        service.customer_id = customer_id
        db.session.add(ServiceNote(
            service_id=service.id,
            note=f"Reassigned from customer {old_customer_id} to customer {customer_id}",
            added_by_user_id=actor_id,
        ))
        db.session.flush()

        customer_service.recompute(old_customer_id, commit=False)
        customer_service.recompute(customer_id, commit=False)
        return service

    return run_in_transaction(_op)


def add_note(service_id: int, note: str, actor_id: int | None = None) -> ServiceNote:
    text = _require_text("note", note)

    def _op():
        service = _load_service(service_id)
        entry = ServiceNote(service_id=service.id, note=text, added_by_user_id=actor_id)
        db.session.add(entry)
        db.session.flush()
        return entry

    return run_in_transaction(_op)


def delete_service(service_id: int, actor_id: int | None = None) -> None:
    """Remove a ticket with its notes and history, retracting any completed value."""
    def _op():
        service = _load_service(service_id)
        customer_id = service.customer_id

        for child in list(service.notes) + list(service.status_history):
            db.session.delete(child)
        db.session.delete(service)
        db.session.flush()

        customer_service.recompute(customer_id, commit=False)

    run_in_transaction(_op)


def list_services(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Service], int]:
    """Newest service_date first. The range covers `start` through the whole day of `end`."""
    q = db.session.query(Service)
    if start is not None:
        q = q.filter(Service.service_date >= start)
    if end is not None:
        q = q.filter(Service.service_date < next_day_start(end))
    if customer_id is not None:
        q = q.filter(Service.customer_id == customer_id)
    if status:
        q = q.filter(Service.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Service.brand.ilike(pattern),
            Service.model.ilike(pattern),
            Service.movement_no.ilike(pattern),
            Service.issue.ilike(pattern),
        ))
    total = q.count()
    services = q.order_by(Service.service_date.desc(), Service.id.desc()).limit(limit).offset(offset).all()
    return services, total


def list_incomplete_services(limit: int = INCOMPLETE_LIMIT) -> list[Service]:
    """Open tickets (pending, in-progress, on-hold), most recently opened first."""
    return (
        db.session.query(Service)
        .filter(Service.status.in_(OPEN_STATUSES))
        .order_by(Service.created_at.desc(), Service.id.desc())
        .limit(limit)
        .all()
    )


def get_service_stats() -> dict:
    counts = {status: 0 for status in SERVICE_STATUSES}
    for status, count in db.session.query(Service.status, func.count(Service.id)).group_by(Service.status).all():
        counts[status] = int(count)

    completed_revenue = (
        db.session.query(func.coalesce(func.sum(func.coalesce(Service.final_cost_cents, Service.cost_cents)), 0))
        .filter(Service.status == SERVICE_COMPLETED)
        .scalar()
    )
    average_cost = db.session.query(func.avg(Service.cost_cents)).scalar()

    durations = [
        (completed_at - service_date).total_seconds() / 86400
        for service_date, completed_at in (
            db.session.query(Service.service_date, Service.completed_at)
            .filter(Service.status == SERVICE_COMPLETED, Service.completed_at.isnot(None))
            .all()
        )
    ]

    return {
        "total_services": sum(counts.values()),
        "incomplete_services": sum(counts[s] for s in OPEN_STATUSES),
        "by_status": counts,
        "completed_revenue_cents": int(completed_revenue or 0),
        "average_cost_cents": int(round(average_cost)) if average_cost is not None else 0,
        "average_completion_days": round(sum(durations) / len(durations), 1) if durations else 0,
    }
