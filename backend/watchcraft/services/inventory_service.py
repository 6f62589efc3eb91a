# Overview: Service-layer operations for the inventory ledger; stock quantity, status and outlet movements.

# backend/watchcraft/services/inventory_service.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryItem, InventoryMovement
from ..models.inventory import (
    DEFAULT_SIZE,
    ITEM_TYPES,
    OUTLETS,
    STATUS_AVAILABLE,
    STATUS_OUT_OF_STOCK,
    STATUS_SOLD,
)
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    ValidationError,
    enforce_price_cents,
    require_choice,
    require_int,
    require_positive_int,
)
from .concurrency import run_in_transaction
"""
Inventory Ledger Invariants (authoritative)

- quantity >= 0 at all times. Every decrement is one conditional UPDATE
  ("... WHERE quantity >= :amount"); zero matched rows means the stock was
  not there. Never read-modify-write a quantity.
- status == 'available' iff quantity > 0 once an operation settles.
- Reaching zero through a sale yields 'sold'; through anything else
  (manual correction) yields 'out-of-stock'. The caller names the reason.
- Movement records are append-only. Outlet changes always write one.
- Primitives flush but do not commit when commit=False so sales_service
  can compose them into a single transaction.
"""

REASON_SALE = "sale"
REASON_CORRECTION = "correction"
REASON_RESTOCK = "restock"
REASON_SALE_REVERSAL = "sale_reversal"

DECREASE_REASONS = (REASON_SALE, REASON_CORRECTION)
INCREASE_REASONS = (REASON_RESTOCK, REASON_SALE_REVERSAL, REASON_CORRECTION)

ADJUST_OPERATIONS = ("set", "add", "subtract")

INITIAL_STOCK_REASON = "Initial Stock"
DEFAULT_MOVE_REASON = "Stock Transfer"
MANUAL_UPDATE_REASON = "Manual Update"

UPDATABLE_FIELDS = {"code", "type", "brand", "model", "size", "description", "price_cents", "outlet", "quantity"}


class InsufficientStockError(ConflictError):
    """Requested quantity exceeds what is on hand."""


class InvalidOutletError(ValidationError):
    """Outlet is not one of the fixed shop locations."""


class SameOutletError(ValidationError):
    """Move requested to the outlet the item is already at."""


def _maybe_commit(op, commit: bool):
    if commit:
        return run_in_transaction(op)
    return op()


def _load_item(item_id: int, *, include_deleted: bool = False, refresh: bool = False) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id, populate_existing=refresh)
    if item is None or (item.is_deleted and not include_deleted):
        raise NotFoundError("Inventory item not found", details={"item_id": item_id})
    return item


def _require_outlet(outlet) -> str:
    if outlet not in OUTLETS:
        raise InvalidOutletError(
            f"Outlet must be one of: {', '.join(OUTLETS)}",
            details={"outlet": outlet},
        )
    return outlet


def get_item(item_id: int, *, include_deleted: bool = False) -> InventoryItem:
    return _load_item(item_id, include_deleted=include_deleted)


# ---------------------------------------------------------------------------
# Ledger primitives
# ---------------------------------------------------------------------------

def decrease(
    item_id: int,
    amount: int,
    actor_id: int | None = None,
    *,
    reason: str = REASON_SALE,
    commit: bool = True,
) -> InventoryItem:
    """
    Take `amount` units out of stock.

    Raises NotFoundError for a missing or soft-deleted item and
    InsufficientStockError when fewer than `amount` units remain. The
    quantity, status and sale counters change in a single statement.
    """
    require_positive_int("amount", amount)
    require_choice("reason", reason, DECREASE_REASONS)

    def _op():
        zero_status = STATUS_SOLD if reason == REASON_SALE else STATUS_OUT_OF_STOCK
        remaining = InventoryItem.quantity - amount
        values = {
            "quantity": remaining,
            "status": case((remaining == 0, zero_status), else_=STATUS_AVAILABLE),
            "version_id": InventoryItem.version_id + 1,
        }
        if reason == REASON_SALE:
            values["total_sold"] = InventoryItem.total_sold + amount
            values["last_sale_date"] = utcnow()

        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.id == item_id,
                InventoryItem.is_deleted.is_(False),
                InventoryItem.quantity >= amount,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)

        if result.rowcount == 0:
            item = _load_item(item_id, refresh=True)
            raise InsufficientStockError(
                "Insufficient stock available",
                details={
                    "item_id": item_id,
                    "code": item.code,
                    "requested_quantity": amount,
                    "available_quantity": item.quantity,
                },
            )

        return _load_item(item_id, refresh=True)

    return _maybe_commit(_op, commit)


def increase(
    item_id: int,
    amount: int,
    *,
    reason: str = REASON_RESTOCK,
    commit: bool = True,
) -> InventoryItem:
    """
    Put `amount` units back into stock; no upper bound.

    Soft-deleted items are accepted so a sale reversal always lands.
    A 'sale_reversal' also takes the units back off total_sold.
    """
    require_positive_int("amount", amount)
    require_choice("reason", reason, INCREASE_REASONS)

    def _op():
        values = {
            "quantity": InventoryItem.quantity + amount,
            # amount > 0 and quantity >= 0, so the result is always in stock
            "status": STATUS_AVAILABLE,
            "version_id": InventoryItem.version_id + 1,
        }
        if reason == REASON_SALE_REVERSAL:
            values["total_sold"] = case(
                (InventoryItem.total_sold > amount, InventoryItem.total_sold - amount),
                else_=0,
            )

        stmt = (
            update(InventoryItem)
            .where(InventoryItem.id == item_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Inventory item not found", details={"item_id": item_id})

        return _load_item(item_id, include_deleted=True, refresh=True)

    return _maybe_commit(_op, commit)


def record_movement(
    item_id: int,
    from_outlet: str | None,
    to_outlet: str,
    reason: str | None,
    actor_id: int | None = None,
    *,
    occurred_at: datetime | None = None,
    commit: bool = True,
) -> InventoryMovement:
    """
    Append a movement record. Does NOT change the item's outlet.

    from_outlet is None only for the initial-stock record.
    """
    _require_outlet(to_outlet)
    if from_outlet is not None:
        _require_outlet(from_outlet)

    def _op():
        _load_item(item_id)
        movement = InventoryMovement(
            item_id=item_id,
            date=occurred_at or utcnow(),
            from_outlet=from_outlet,
            to_outlet=to_outlet,
            reason=(reason or "").strip() or DEFAULT_MOVE_REASON,
            moved_by_user_id=actor_id,
        )
        db.session.add(movement)
        db.session.flush()
        return movement

    return _maybe_commit(_op, commit)


def move_to_outlet(
    item_id: int,
    new_outlet: str,
    reason: str | None = None,
    actor_id: int | None = None,
    *,
    commit: bool = True,
) -> InventoryItem:
    """Transfer an item to another outlet, logging the movement in the same flush."""
    _require_outlet(new_outlet)

    def _op():
        item = _load_item(item_id)
        if item.outlet == new_outlet:
            raise SameOutletError(
                f"Item is already at {new_outlet}",
                details={"item_id": item_id, "outlet": new_outlet},
            )
        record_movement(item.id, item.outlet, new_outlet, reason, actor_id, commit=False)
        item.outlet = new_outlet
        # version_id_col turns a concurrent move into StaleDataError (retried)
        db.session.flush()
        return item

    return _maybe_commit(_op, commit)


def set_quantity(
    item_id: int,
    quantity: int,
    actor_id: int | None = None,
    *,
    commit: bool = True,
) -> InventoryItem:
    """
    Manual stock correction to an absolute quantity.

    Zero from this path means 'out-of-stock', unless the item was already
    at zero (its existing status is kept).
    """
    require_int("quantity", quantity, minimum=0)

    def _op():
        if quantity > 0:
            status = STATUS_AVAILABLE
        else:
            status = case((InventoryItem.quantity == 0, InventoryItem.status), else_=STATUS_OUT_OF_STOCK)

        stmt = (
            update(InventoryItem)
            .where(InventoryItem.id == item_id, InventoryItem.is_deleted.is_(False))
            .values(quantity=quantity, status=status, version_id=InventoryItem.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Inventory item not found", details={"item_id": item_id})
        return _load_item(item_id, refresh=True)

    return _maybe_commit(_op, commit)


def adjust_quantity(
    item_id: int,
    quantity: int,
    operation: str = "set",
    actor_id: int | None = None,
) -> InventoryItem:
    """
    Manual stock adjustment.

    - set: absolute correction
    - add: correction upward
    - subtract: correction; refuses to go below zero instead of clamping
    """
    require_choice("operation", operation, ADJUST_OPERATIONS)
    if operation == "set":
        return set_quantity(item_id, quantity, actor_id)
    if operation == "add":
        _load_item(item_id)
        return increase(item_id, quantity, reason=REASON_CORRECTION)
    return decrease(item_id, quantity, actor_id, reason=REASON_CORRECTION)


# ---------------------------------------------------------------------------
# Item master data
# ---------------------------------------------------------------------------

def _clean_text(field: str, value, *, required: bool) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    text = str(value).strip()
    if required and not text:
        raise ValidationError(f"{field} cannot be blank")
    return text


def _enforce_strap_size(item_type: str, size: str | None) -> None:
    if item_type == "Strap" and (not size or size == DEFAULT_SIZE):
        raise ValidationError("size is required for Strap items", details={"field": "size"})


def create_item(data: dict, actor_id: int | None = None) -> InventoryItem:
    """
    Create a stock item and its initial-stock movement record.

    Raises DuplicateKeyError when the (uppercased) code is taken, including
    by a soft-deleted item.
    """
    code = _clean_text("code", data.get("code"), required=True).upper()
    item_type = require_choice("type", data.get("type"), ITEM_TYPES)
    brand = _clean_text("brand", data.get("brand"), required=True)
    model = _clean_text("model", data.get("model"), required=True)
    size = _clean_text("size", data.get("size"), required=False) or DEFAULT_SIZE
    _enforce_strap_size(item_type, size)
    price_cents = enforce_price_cents("price_cents", data.get("price_cents"))
    quantity = require_int("quantity", data.get("quantity", 0), minimum=0)
    outlet = _require_outlet(data.get("outlet"))
    description = _clean_text("description", data.get("description"), required=False)

    def _op():
        if db.session.query(InventoryItem.id).filter_by(code=code).first():
            raise DuplicateKeyError("Item code already exists", details={"code": code})

        item = InventoryItem(
            code=code,
            type=item_type,
            brand=brand,
            model=model,
            size=size,
            description=description,
            price_cents=price_cents,
            quantity=quantity,
            outlet=outlet,
            status=STATUS_AVAILABLE if quantity > 0 else STATUS_OUT_OF_STOCK,
            added_by_user_id=actor_id,
        )
        db.session.add(item)
        db.session.flush()

        record_movement(item.id, None, outlet, INITIAL_STOCK_REASON, actor_id, commit=False)
        return item

    try:
        return run_in_transaction(_op)
    except IntegrityError as exc:
        raise DuplicateKeyError("Item code already exists", details={"code": code}) from exc


def update_item(item_id: int, data: dict, actor_id: int | None = None) -> InventoryItem:
    """
    Edit descriptive fields and price.

    An outlet change goes through move_to_outlet and a quantity change
    through set_quantity, both inside the same transaction as the edit.
    """
    unknown = set(data) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    def _op():
        item = _load_item(item_id)

        if "code" in data and str(data["code"] or "").strip().upper() != item.code:
            raise ValidationError("code cannot be changed", details={"code": item.code})

        item_type = require_choice("type", data["type"], ITEM_TYPES) if "type" in data else item.type
        size = item.size
        if "size" in data:
            size = _clean_text("size", data["size"], required=False) or DEFAULT_SIZE
        _enforce_strap_size(item_type, size)

        item.type = item_type
        item.size = size
        if "brand" in data:
            item.brand = _clean_text("brand", data["brand"], required=True)
        if "model" in data:
            item.model = _clean_text("model", data["model"], required=True)
        if "description" in data:
            item.description = _clean_text("description", data["description"], required=False)
        if "price_cents" in data:
            item.price_cents = enforce_price_cents("price_cents", data["price_cents"])
        db.session.flush()

        if "outlet" in data and data["outlet"] != item.outlet:
            move_to_outlet(item.id, data["outlet"], MANUAL_UPDATE_REASON, actor_id, commit=False)
        if "quantity" in data:
            set_quantity(item.id, data["quantity"], actor_id, commit=False)

        return _load_item(item_id, refresh=True)

    return run_in_transaction(_op)


def soft_delete_item(item_id: int, actor_id: int | None = None) -> InventoryItem:
    """Flag an item deleted; its row and movement history stay for sale records."""
    def _op():
        item = _load_item(item_id)
        item.is_deleted = True
        item.deleted_at = utcnow()
        item.deleted_by_user_id = actor_id
        db.session.flush()
        return item

    return run_in_transaction(_op)


def get_movement_history(item_id: int) -> list[InventoryMovement]:
    _load_item(item_id, include_deleted=True)
    return (
        db.session.query(InventoryMovement)
        .filter_by(item_id=item_id)
        .order_by(InventoryMovement.id.asc())
        .all()
    )


def list_items(
    *,
    outlet: str | None = None,
    item_type: str | None = None,
    status: str | None = None,
    search: str | None = None,
    include_deleted: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[InventoryItem], int]:
    q = db.session.query(InventoryItem)
    if not include_deleted:
        q = q.filter(InventoryItem.is_deleted.is_(False))
    if outlet:
        q = q.filter(InventoryItem.outlet == outlet)
    if item_type:
        q = q.filter(InventoryItem.type == item_type)
    if status:
        q = q.filter(InventoryItem.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            InventoryItem.code.ilike(pattern),
            InventoryItem.brand.ilike(pattern),
            InventoryItem.model.ilike(pattern),
        ))

    total = q.count()
    items = q.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc()).limit(limit).offset(offset).all()
    return items, total


def get_inventory_stats(low_stock_threshold: int = 2) -> dict:
    """Stock counts and valuation over live (not soft-deleted) items."""
    live = db.session.query(InventoryItem).filter(InventoryItem.is_deleted.is_(False))

    stock_value = func.coalesce(func.sum(InventoryItem.price_cents * InventoryItem.quantity), 0)
    value_row = (
        db.session.query(stock_value.label("value"), func.avg(InventoryItem.price_cents).label("avg_price"))
        .filter(InventoryItem.is_deleted.is_(False))
        .one()
    )

    outlet_rows = (
        db.session.query(
            InventoryItem.outlet,
            func.count(InventoryItem.id),
            stock_value,
        )
        .filter(InventoryItem.is_deleted.is_(False))
        .group_by(InventoryItem.outlet)
        .all()
    )
    by_outlet = {outlet: {"count": 0, "value_cents": 0} for outlet in OUTLETS}
    for outlet, count, value in outlet_rows:
        by_outlet[outlet] = {"count": int(count), "value_cents": int(value or 0)}

    return {
        "total_items": live.count(),
        "available_items": live.filter(InventoryItem.status == STATUS_AVAILABLE).count(),
        "sold_items": live.filter(InventoryItem.status == STATUS_SOLD).count(),
        "out_of_stock_items": live.filter(InventoryItem.status == STATUS_OUT_OF_STOCK).count(),
        "low_stock_items": live.filter(
            InventoryItem.quantity > 0,
            InventoryItem.quantity <= low_stock_threshold,
        ).count(),
        "total_value_cents": int(value_row.value or 0),
        "average_price_cents": int(round(value_row.avg_price)) if value_row.avg_price is not None else 0,
        "outlets": by_outlet,
    }
