"""Service tickets: transition rules, completion and net value retraction."""

import pytest

from watchcraft.extensions import db
from watchcraft.models import Customer, ServiceNote, ServiceStatusChange
from watchcraft.services import service_lifecycle
from watchcraft.services.service_lifecycle import InvalidStatusError, InvalidTransitionError
from watchcraft.time_utils import parse_iso_datetime
from watchcraft.validation import NotFoundError, ValidationError

from conftest import ACTOR_ID


def _net_value(customer_id):
    return db.session.get(Customer, customer_id, populate_existing=True).net_value_cents


def _complete(service_id, **completion):
    completion.setdefault("description", "Cleaned and regulated")
    return service_lifecycle.complete_service(service_id, completion, ACTOR_ID)


def test_new_ticket_is_pending_and_counted(make_customer, make_service):
    customer = make_customer()

    service = make_service(customer.id)

    assert service.status == "pending"
    assert [(h.from_status, h.to_status) for h in service.status_history] == [(None, "pending")]
    stored = db.session.get(Customer, customer.id, populate_existing=True)
    assert stored.service_count == 1
    assert stored.net_value_cents == 0
    assert stored.last_service_date is not None


def test_completion_credits_final_cost_not_quote(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id, cost_cents=50000)

    service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)
    assert _net_value(customer.id) == 0

    done = _complete(service.id, final_cost_cents=45000, warranty_period=6)

    assert done.status == "completed"
    assert done.billable_cents == 45000
    assert done.completed_at is not None
    assert done.actual_delivery is not None
    assert done.warranty_expires_at is not None
    assert _net_value(customer.id) == 45000
    assert done.notes[-1].note == "Service completed: Cleaned and regulated"
    assert [h.to_status for h in done.status_history] == ["pending", "in-progress", "completed"]


def test_completion_without_final_cost_uses_quote(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id, cost_cents=12000)
    service_lifecycle.update_status(service.id, "on-hold", ACTOR_ID)

    _complete(service.id)

    assert _net_value(customer.id) == 12000


@pytest.mark.parametrize(
    "completion",
    [
        {"description": ""},
        {"description": "   "},
        {"description": "ok", "final_cost_cents": -1},
        {"description": "ok", "warranty_period": 61},
        {"description": "ok", "warranty_period": -1},
        {"description": "ok", "actual_delivery": "next tuesday"},
    ],
)
def test_completion_validation(make_customer, make_service, completion):
    customer = make_customer()
    service = make_service(customer.id)
    service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)

    with pytest.raises(ValidationError):
        service_lifecycle.complete_service(service.id, completion, ACTOR_ID)

    assert service_lifecycle.get_service(service.id).status == "in-progress"


def test_unknown_status_and_disallowed_transitions(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id)

    with pytest.raises(InvalidStatusError):
        service_lifecycle.update_status(service.id, "lost", ACTOR_ID)
    with pytest.raises(InvalidTransitionError):
        service_lifecycle.update_status(service.id, "completed", ACTOR_ID)

    service_lifecycle.update_status(service.id, "cancelled", ACTOR_ID)
    with pytest.raises(InvalidTransitionError):
        service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)


def test_status_change_stamps_timestamps(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id)

    started = service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)
    assert started.started_at is not None
    held = service_lifecycle.update_status(service.id, "on-hold", ACTOR_ID)
    assert held.held_at is not None
    cancelled = service_lifecycle.update_status(service.id, "cancelled", ACTOR_ID)
    assert cancelled.cancelled_at is not None

    changes = db.session.query(ServiceStatusChange).filter_by(service_id=service.id).all()
    assert all(c.changed_by_user_id == ACTOR_ID for c in changes)


def test_cancelling_a_completed_ticket_retracts_its_value(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id, cost_cents=30000)
    service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)
    _complete(service.id)
    assert _net_value(customer.id) == 30000

    service_lifecycle.update_status(service.id, "cancelled", ACTOR_ID)

    assert _net_value(customer.id) == 0


def test_reassigning_a_completed_ticket_moves_its_value(make_customer, make_service):
    first = make_customer()
    second = make_customer()
    service = make_service(first.id, cost_cents=20000)
    service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)
    _complete(service.id, final_cost_cents=18000)

    service_lifecycle.reassign_customer(service.id, second.id, ACTOR_ID)

    assert _net_value(first.id) == 0
    assert _net_value(second.id) == 18000
    first_row = db.session.get(Customer, first.id, populate_existing=True)
    assert first_row.service_count == 0


def test_editing_cost_of_completed_ticket_recomputes(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id, cost_cents=10000)
    service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)
    _complete(service.id)

    service_lifecycle.update_service(service.id, {"cost_cents": 15000}, ACTOR_ID)

    assert _net_value(customer.id) == 15000


def test_deleting_a_completed_ticket_retracts_its_value(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id, cost_cents=25000)
    service_lifecycle.add_note(service.id, "Customer called", ACTOR_ID)
    service_lifecycle.update_status(service.id, "in-progress", ACTOR_ID)
    _complete(service.id)

    service_lifecycle.delete_service(service.id, ACTOR_ID)

    stored = db.session.get(Customer, customer.id, populate_existing=True)
    assert stored.net_value_cents == 0
    assert stored.service_count == 0
    assert db.session.query(ServiceNote).count() == 0
    with pytest.raises(NotFoundError):
        service_lifecycle.get_service(service.id)


def test_create_service_validation(make_customer, make_service):
    customer = make_customer()

    with pytest.raises(ValidationError):
        make_service(customer.id, gender="Other")
    with pytest.raises(ValidationError):
        make_service(customer.id, cost_cents=-5)
    with pytest.raises(ValidationError):
        make_service(customer.id, issue=None)
    with pytest.raises(NotFoundError):
        make_service(99999)


def test_add_note_requires_text(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id)

    with pytest.raises(ValidationError):
        service_lifecycle.add_note(service.id, "  ", ACTOR_ID)

    note = service_lifecycle.add_note(service.id, "Parts ordered", ACTOR_ID)
    assert note.added_by_user_id == ACTOR_ID


def test_service_stats(make_customer, make_service):
    customer = make_customer()
    a = make_service(customer.id, cost_cents=10000)
    make_service(customer.id, cost_cents=20000)
    service_lifecycle.update_status(a.id, "in-progress", ACTOR_ID)
    _complete(a.id, final_cost_cents=8000)

    stats = service_lifecycle.get_service_stats()

    assert stats["total_services"] == 2
    assert stats["by_status"]["completed"] == 1
    assert stats["by_status"]["pending"] == 1
    assert stats["completed_revenue_cents"] == 8000
    assert stats["average_cost_cents"] == 15000
    assert stats["average_completion_days"] >= 0


def test_pending_ticket_can_be_completed_directly(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id, cost_cents=4000)

    done = _complete(service.id, final_cost_cents=400)

    assert done.status == "completed"
    assert [(h.from_status, h.to_status) for h in done.status_history] == [
        (None, "pending"),
        ("pending", "completed"),
    ]
    assert _net_value(customer.id) == 400

    with pytest.raises(InvalidTransitionError):
        _complete(service.id)
    assert _net_value(customer.id) == 400


def test_cancelled_ticket_cannot_be_completed(make_customer, make_service):
    customer = make_customer()
    service = make_service(customer.id)
    service_lifecycle.update_status(service.id, "cancelled", ACTOR_ID)

    with pytest.raises(InvalidTransitionError):
        _complete(service.id)

    stored = service_lifecycle.get_service(service.id)
    assert stored.status == "cancelled"
    assert stored.completion_description is None
    assert _net_value(customer.id) == 0


def test_services_date_range_and_incomplete_queue(make_customer, make_service):
    customer = make_customer()
    old = make_service(customer.id, service_date="2026-01-15T10:30:00")
    recent = make_service(customer.id, service_date="2026-03-02T18:45:00")
    done = make_service(customer.id, service_date="2026-03-02T09:00:00")
    cancelled = make_service(customer.id)
    _complete(done.id)
    service_lifecycle.update_status(cancelled.id, "cancelled", ACTOR_ID)

    in_march, total = service_lifecycle.list_services(
        start=parse_iso_datetime("2026-03-01"),
        end=parse_iso_datetime("2026-03-02"),
    )
    assert total == 2
    assert [s.id for s in in_march] == [recent.id, done.id]

    _, january = service_lifecycle.list_services(end=parse_iso_datetime("2026-01-15"))
    assert january == 1

    incomplete = service_lifecycle.list_incomplete_services()
    assert {s.id for s in incomplete} == {old.id, recent.id}
    assert service_lifecycle.get_service_stats()["incomplete_services"] == 2
