# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/watchcraft/routes/sales.py
"""Sales API routes. Every mutation answers with the sale, the customer and the item it touched."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..services import customer_service, inventory_service, sales_service
from ..time_utils import parse_iso_datetime
from ..validation import DomainError

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_bundle(sale) -> dict:
    return {
        "sale": sale.to_dict(),
        "customer": customer_service.get_customer(sale.customer_id).to_dict(),
        "item": inventory_service.get_item(sale.inventory_id, include_deleted=True).to_dict(),
    }


@sales_bp.get("")
def list_sales_route():
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 dates"}), 400

    sales, total = sales_service.list_sales(
        customer_id=request.args.get("customer_id", type=int),
        start=start,
        end=end,
        payment_method=request.args.get("payment_method"),
        limit=min(request.args.get("limit", 50, type=int), 200),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"sales": [s.to_dict() for s in sales], "total": total})


@sales_bp.get("/stats")
def sales_stats_route():
    return jsonify({"stats": sales_service.get_sales_stats()})


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_notes=True)})
    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@sales_bp.post("")
@require_actor
def create_sale_route():
    """
    Record a sale.

    Body: {customer_id, inventory_id, quantity, payment_method,
           price_cents?, discount?: {"type": "percentage"|"amount", "value": int}}
    """
    try:
        data = request.get_json(silent=True) or {}
        required = ("customer_id", "inventory_id", "quantity", "payment_method")
        missing = [f for f in required if f not in data]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        sale = sales_service.create_sale(
            customer_id=data["customer_id"],
            inventory_id=data["inventory_id"],
            quantity=data["quantity"],
            price_cents=data.get("price_cents"),
            discount=data.get("discount"),
            payment_method=data["payment_method"],
            actor_id=g.actor_id,
        )
        current_app.logger.info(
            "Sale %s recorded: item %s x%s for customer %s",
            sale.id, sale.inventory_id, sale.quantity, sale.customer_id,
        )
        return jsonify(_sale_bundle(sale)), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>")
@require_actor
def update_sale_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.update_sale(sale_id, data, g.actor_id)
        return jsonify(_sale_bundle(sale))

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_actor
def delete_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        customer_id, inventory_id = sale.customer_id, sale.inventory_id

        sales_service.delete_sale(sale_id, g.actor_id)
        current_app.logger.info("Sale %s deleted by actor %s", sale_id, g.actor_id)
        return jsonify({
            "deleted": True,
            "sale_id": sale_id,
            "customer": customer_service.get_customer(customer_id).to_dict(),
            "item": inventory_service.get_item(inventory_id, include_deleted=True).to_dict(),
        })

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/notes")
@require_actor
def add_sale_note_route(sale_id: int):
    """Body: {"note": str}"""
    try:
        data = request.get_json(silent=True) or {}
        note = sales_service.add_note(sale_id, data.get("note"), g.actor_id)
        return jsonify({"note": note.to_dict()}), 201

    except DomainError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add sale note")
        return jsonify({"error": "Internal server error"}), 500
