# Overview: Flask API routes for the inventory ledger; parses input and returns JSON responses.

# backend/watchcraft/routes/inventory.py

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..models import InventoryItem
from ..services import inventory_service
from ..validation import DomainError, ModelValidationPolicy, validate_payload

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"code", "type", "brand", "model", "size", "description", "price_cents", "quantity", "outlet"},
    required_on_create={"code", "type", "brand", "model", "price_cents", "outlet"},
)


def _error(e: DomainError):
    return jsonify({"error": str(e), "details": e.details}), e.status_code


@inventory_bp.get("")
def list_items_route():
    items, total = inventory_service.list_items(
        outlet=request.args.get("outlet"),
        item_type=request.args.get("type"),
        status=request.args.get("status"),
        search=request.args.get("search"),
        include_deleted=request.args.get("include_deleted", "false").lower() == "true",
        limit=min(request.args.get("limit", 50, type=int), 200),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"items": [i.to_dict() for i in items], "total": total})


@inventory_bp.get("/stats")
def inventory_stats_route():
    stats = inventory_service.get_inventory_stats(current_app.config["LOW_STOCK_THRESHOLD"])
    return jsonify({"stats": stats})


@inventory_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    try:
        item = inventory_service.get_item(item_id)
        return jsonify({"item": item.to_dict(include_movements=True)})
    except DomainError as e:
        return _error(e)


@inventory_bp.get("/<int:item_id>/movements")
def item_movements_route(item_id: int):
    try:
        movements = inventory_service.get_movement_history(item_id)
        return jsonify({"movements": [m.to_dict() for m in movements]})
    except DomainError as e:
        return _error(e)


@inventory_bp.post("")
@require_actor
def create_item_route():
    try:
        data = validate_payload(
            model=InventoryItem,
            payload=request.get_json(silent=True),
            policy=ITEM_POLICY,
            partial=False,
        )
        item = inventory_service.create_item(data, g.actor_id)
        return jsonify({"item": item.to_dict(include_movements=True)}), 201

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.patch("/<int:item_id>")
@require_actor
def update_item_route(item_id: int):
    try:
        data = validate_payload(
            model=InventoryItem,
            payload=request.get_json(silent=True),
            policy=ITEM_POLICY,
            partial=True,
        )
        item = inventory_service.update_item(item_id, data, g.actor_id)
        return jsonify({"item": item.to_dict(include_movements=True)})

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:item_id>/move")
@require_actor
def move_item_route(item_id: int):
    """
    Transfer an item to another outlet.

    Body: {"outlet": "Navalur", "reason": "Display refresh"}
    """
    try:
        data = request.get_json(silent=True) or {}
        item = inventory_service.move_to_outlet(item_id, data.get("outlet"), data.get("reason"), g.actor_id)
        return jsonify({"item": item.to_dict(include_movements=True)})

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to move inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:item_id>/adjust")
@require_actor
def adjust_item_route(item_id: int):
    """
    Manual stock correction.

    Body: {"quantity": 3, "operation": "set" | "add" | "subtract"}
    """
    try:
        data = request.get_json(silent=True) or {}
        item = inventory_service.adjust_quantity(
            item_id,
            data.get("quantity"),
            data.get("operation", "set"),
            g.actor_id,
        )
        return jsonify({"item": item.to_dict()})

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory quantity")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:item_id>")
@require_actor
def delete_item_route(item_id: int):
    try:
        item = inventory_service.soft_delete_item(item_id, g.actor_id)
        return jsonify({"item": item.to_dict()})

    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete inventory item")
        return jsonify({"error": "Internal server error"}), 500
