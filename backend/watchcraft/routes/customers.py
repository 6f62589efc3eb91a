# Overview: Flask API routes for customers and their derived account summary.

# backend/watchcraft/routes/customers.py

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..models import Customer
from ..services import customer_service
from ..validation import DomainError, ModelValidationPolicy, validate_payload

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "status"},
    required_on_create={"name", "email", "phone"},
)


@customers_bp.get("")
def list_customers_route():
    customers, total = customer_service.list_customers(
        search=request.args.get("search"),
        status=request.args.get("status"),
        limit=min(request.args.get("limit", 50, type=int), 200),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"customers": [c.to_dict() for c in customers], "total": total})


@customers_bp.get("/stats")
def customer_stats_route():
    return jsonify({"stats": customer_service.get_customer_stats()})


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        return jsonify({"customer": customer.to_dict(include_notes=True)})
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@customers_bp.post("")
@require_actor
def create_customer_route():
    try:
        data = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CUSTOMER_POLICY,
            partial=False,
        )
        customer = customer_service.create_customer(data, g.actor_id)
        return jsonify({"customer": customer.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.patch("/<int:customer_id>")
@require_actor
def update_customer_route(customer_id: int):
    try:
        data = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CUSTOMER_POLICY,
            partial=True,
        )
        customer = customer_service.update_customer(customer_id, data)
        return jsonify({"customer": customer.to_dict()})

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_actor
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
        return jsonify({"deleted": True, "customer_id": customer_id})

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/recompute")
@require_actor
def recompute_customer_route(customer_id: int):
    """Rebuild the derived summary from sales and services (drift repair)."""
    try:
        customer_service.recompute(customer_id)
        customer = customer_service.get_customer(customer_id)
        return jsonify({"customer": customer.to_dict()})

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to recompute customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/notes")
@require_actor
def add_customer_note_route(customer_id: int):
    """Body: {"note": str}"""
    try:
        data = request.get_json(silent=True) or {}
        note = customer_service.add_note(customer_id, data.get("note"), g.actor_id)
        return jsonify({"note": note.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add customer note")
        return jsonify({"error": "Internal server error"}), 500
