# Overview: Flask API routes for repair tickets; status changes, completion and notes.

# backend/watchcraft/routes/services.py

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..services import customer_service, service_lifecycle
from ..time_utils import parse_iso_datetime
from ..validation import DomainError

services_bp = Blueprint("services", __name__, url_prefix="/api/services")


def _service_bundle(service) -> dict:
    return {
        "service": service.to_dict(include_history=True),
        "customer": customer_service.get_customer(service.customer_id).to_dict(),
    }


@services_bp.get("")
def list_services_route():
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 dates"}), 400

    services, total = service_lifecycle.list_services(
        customer_id=request.args.get("customer_id", type=int),
        status=request.args.get("status"),
        search=request.args.get("search"),
        start=start,
        end=end,
        limit=min(request.args.get("limit", 50, type=int), 200),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"services": [s.to_dict() for s in services], "total": total})


@services_bp.get("/incomplete")
def incomplete_services_route():
    limit = min(request.args.get("limit", service_lifecycle.INCOMPLETE_LIMIT, type=int), 200)
    services = service_lifecycle.list_incomplete_services(limit)
    return jsonify({"services": [s.to_dict() for s in services]})


@services_bp.get("/stats")
def service_stats_route():
    return jsonify({"stats": service_lifecycle.get_service_stats()})


@services_bp.get("/<int:service_id>")
def get_service_route(service_id: int):
    try:
        service = service_lifecycle.get_service(service_id)
        return jsonify({"service": service.to_dict(include_history=True)})
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@services_bp.post("")
@require_actor
def create_service_route():
    try:
        data = request.get_json(silent=True) or {}
        service = service_lifecycle.create_service(data, g.actor_id)
        return jsonify(_service_bundle(service)), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create service")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.patch("/<int:service_id>")
@require_actor
def update_service_route(service_id: int):
    try:
        data = request.get_json(silent=True) or {}
        service = service_lifecycle.update_service(service_id, data, g.actor_id)
        return jsonify(_service_bundle(service))

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update service")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.post("/<int:service_id>/status")
@require_actor
def update_status_route(service_id: int):
    """Body: {"status": "in-progress"}"""
    try:
        data = request.get_json(silent=True) or {}
        service = service_lifecycle.update_status(service_id, data.get("status"), g.actor_id)
        current_app.logger.info("Service %s moved to %s", service_id, service.status)
        return jsonify(_service_bundle(service))

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update service status")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.post("/<int:service_id>/complete")
@require_actor
def complete_service_route(service_id: int):
    """
    Body: {"description": str, "final_cost_cents": int?, "warranty_period": int?,
           "actual_delivery": ISO-8601?}
    """
    try:
        data = request.get_json(silent=True) or {}
        service = service_lifecycle.complete_service(service_id, data, g.actor_id)
        current_app.logger.info(
            "Service %s completed for customer %s (billed %s cents)",
            service_id, service.customer_id, service.billable_cents,
        )
        return jsonify(_service_bundle(service))

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete service")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.post("/<int:service_id>/reassign")
@require_actor
def reassign_service_route(service_id: int):
    """Body: {"customer_id": int}"""
    try:
        data = request.get_json(silent=True) or {}
        if "customer_id" not in data:
            return jsonify({"error": "customer_id required"}), 400
        service = service_lifecycle.reassign_customer(service_id, data["customer_id"], g.actor_id)
        return jsonify(_service_bundle(service))

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reassign service")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.post("/<int:service_id>/notes")
@require_actor
def add_note_route(service_id: int):
    try:
        data = request.get_json(silent=True) or {}
        note = service_lifecycle.add_note(service_id, data.get("note"), g.actor_id)
        return jsonify({"note": note.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add service note")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.delete("/<int:service_id>")
@require_actor
def delete_service_route(service_id: int):
    try:
        customer_id = service_lifecycle.get_service(service_id).customer_id
        service_lifecycle.delete_service(service_id, g.actor_id)
        return jsonify({
            "deleted": True,
            "service_id": service_id,
            "customer": customer_service.get_customer(customer_id).to_dict(),
        })

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete service")
        return jsonify({"error": "Internal server error"}), 500
