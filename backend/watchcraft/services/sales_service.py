# Overview: Service-layer operations for sales; coordinates stock and customer effects in one transaction.

# backend/watchcraft/services/sales_service.py
"""
Sale transaction service.

A sale touches three rows: the inventory item (stock out), the sale itself,
and the customer (derived summary). Every public mutator here runs those
steps as ONE database transaction via run_in_transaction:

  create:  decrease stock -> insert sale -> recompute customer -> commit
  delete:  restore stock  -> delete sale -> recompute customer -> commit
  update:  reverse old stock effect -> apply new -> rewrite amounts
           -> recompute affected customer(s) -> commit

If any step raises (InsufficientStockError, NotFoundError, a flush
failure) the whole unit rolls back, so the caller never sees a sale
without its stock movement or a customer summary that disagrees with
its sales.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, Sale, SaleNote
from ..models.sales import DISCOUNT_TYPES, PAYMENT_METHODS
from ..time_utils import next_day_start, start_of_day, utcnow
from ..validation import (
    FULL_PERCENT_BPS,
    NotFoundError,
    ValidationError,
    enforce_price_cents,
    require_choice,
    require_int,
    require_positive_int,
)
from . import customer_service, inventory_service
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import REASON_SALE, REASON_SALE_REVERSAL

SALE_UPDATABLE_FIELDS = {"customer_id", "inventory_id", "quantity", "price_cents", "discount", "payment_method"}
TOP_ITEMS_LIMIT = 5


def compute_amounts(
    price_cents: int,
    quantity: int,
    discount_type: str = "none",
    discount_value: int = 0,
) -> dict:
    """
    Subtotal, capped discount and total for one sale line, in cents.

    discount_value is basis points for 'percentage' (rounded half-up to the
    cent) and cents for 'amount'. The discount never exceeds the subtotal.
    """
    subtotal = price_cents * quantity

    if discount_type == "percentage":
        discount = (subtotal * discount_value + FULL_PERCENT_BPS // 2) // FULL_PERCENT_BPS
    elif discount_type == "amount":
        discount = discount_value
    else:
        discount = 0

    discount = min(discount, subtotal)
    return {
        "subtotal_cents": subtotal,
        "discount_amount_cents": discount,
        "total_amount_cents": subtotal - discount,
    }


def _normalize_discount(discount: dict | None) -> tuple[str, int]:
    if not discount:
        return "none", 0
    if not isinstance(discount, dict):
        raise ValidationError("discount must be an object with type and value")

    discount_type = require_choice("discount.type", discount.get("type", "none"), DISCOUNT_TYPES)
    if discount_type == "none":
        return "none", 0
    value = require_int("discount.value", discount.get("value", 0), minimum=0)
    return discount_type, value


def _load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    if lock:
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
    else:
        sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def get_sale(sale_id: int) -> Sale:
    return _load_sale(sale_id)


def create_sale(
    customer_id: int,
    inventory_id: int,
    quantity: int,
    price_cents: int | None = None,
    discount: dict | None = None,
    payment_method: str = "Cash",
    actor_id: int | None = None,
) -> Sale:
    """
    Record a sale of one inventory item to one customer.

    price_cents defaults to the item's list price. Raises NotFoundError for
    an unknown customer or item and InsufficientStockError when the stock
    is short; in both cases nothing is written.
    """
    require_positive_int("customer_id", customer_id)
    require_positive_int("inventory_id", inventory_id)
    require_positive_int("quantity", quantity)
    if price_cents is not None:
        enforce_price_cents("price_cents", price_cents)
    discount_type, discount_value = _normalize_discount(discount)
    require_choice("payment_method", payment_method, PAYMENT_METHODS)

    def _op():
        customer_service.get_customer(customer_id)
        item = inventory_service.get_item(inventory_id)

        unit_price = price_cents if price_cents is not None else item.price_cents
        amounts = compute_amounts(unit_price, quantity, discount_type, discount_value)

        inventory_service.decrease(inventory_id, quantity, actor_id, reason=REASON_SALE, commit=False)

        sale = Sale(
            customer_id=customer_id,
            inventory_id=inventory_id,
            quantity=quantity,
            price_cents=unit_price,
            discount_type=discount_type,
            discount_value=discount_value,
            payment_method=payment_method,
            status="completed",
            created_by_user_id=actor_id,
            **amounts,
        )
        db.session.add(sale)
        db.session.flush()

        customer_service.recompute(customer_id, commit=False)
        return sale

    return run_in_transaction(_op)


def delete_sale(sale_id: int, actor_id: int | None = None) -> None:
    """
    Reverse a sale: stock goes back, the row goes, the customer is recomputed
    over the remaining sales.
    """
    def _op():
        sale = _load_sale(sale_id, lock=True)
        customer_id = sale.customer_id

        inventory_service.increase(
            sale.inventory_id, sale.quantity, reason=REASON_SALE_REVERSAL, commit=False
        )
        for note in list(sale.notes):
            db.session.delete(note)
        db.session.delete(sale)
        db.session.flush()

        customer_service.recompute(customer_id, commit=False)

    run_in_transaction(_op)


def update_sale(sale_id: int, changes: dict, actor_id: int | None = None) -> Sale:
    """
    Edit a sale in place.

    - quantity/inventory_id: the old stock effect is reversed and the new
      one applied; short stock rejects the whole edit
    - price_cents/discount/payment_method: amounts are recomputed
    - customer_id: both the old and the new customer are recomputed
    """
    unknown = set(changes) - SALE_UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    for key in ("customer_id", "inventory_id", "quantity"):
        if key in changes:
            require_positive_int(key, changes[key])
    if "price_cents" in changes:
        enforce_price_cents("price_cents", changes["price_cents"])
    if "payment_method" in changes:
        require_choice("payment_method", changes["payment_method"], PAYMENT_METHODS)
    new_discount = _normalize_discount(changes["discount"]) if "discount" in changes else None

    def _op():
        sale = _load_sale(sale_id, lock=True)
        old_customer_id = sale.customer_id
        old_item_id = sale.inventory_id
        old_quantity = sale.quantity

        new_customer_id = changes.get("customer_id", old_customer_id)
        new_item_id = changes.get("inventory_id", old_item_id)
        new_quantity = changes.get("quantity", old_quantity)

        if new_customer_id != old_customer_id:
            customer_service.get_customer(new_customer_id)

        if new_item_id != old_item_id:
            new_item = inventory_service.get_item(new_item_id)
            inventory_service.increase(old_item_id, old_quantity, reason=REASON_SALE_REVERSAL, commit=False)
            inventory_service.decrease(new_item_id, new_quantity, actor_id, reason=REASON_SALE, commit=False)
            if "price_cents" not in changes:
                sale.price_cents = new_item.price_cents
        elif new_quantity > old_quantity:
            inventory_service.decrease(
                old_item_id, new_quantity - old_quantity, actor_id, reason=REASON_SALE, commit=False
            )
        elif new_quantity < old_quantity:
            inventory_service.increase(
                old_item_id, old_quantity - new_quantity, reason=REASON_SALE_REVERSAL, commit=False
            )

        if "price_cents" in changes:
            sale.price_cents = changes["price_cents"]
        if new_discount is not None:
            sale.discount_type, sale.discount_value = new_discount
        if "payment_method" in changes:
            sale.payment_method = changes["payment_method"]

        sale.customer_id = new_customer_id
        sale.inventory_id = new_item_id
        sale.quantity = new_quantity
        amounts = compute_amounts(sale.price_cents, sale.quantity, sale.discount_type, sale.discount_value)
        for key, value in amounts.items():
            setattr(sale, key, value)
        sale.updated_by_user_id = actor_id
        db.session.flush()

        customer_service.recompute(new_customer_id, commit=False)
        if new_customer_id != old_customer_id:
            customer_service.recompute(old_customer_id, commit=False)
        return sale

    return run_in_transaction(_op)


def add_note(sale_id: int, note: str, actor_id: int | None = None) -> SaleNote:
    text = str(note).strip() if note is not None else ""
    if not text:
        raise ValidationError("note is required", details={"field": "note"})

    def _op():
        sale = _load_sale(sale_id)
        entry = SaleNote(sale_id=sale.id, note=text, added_by_user_id=actor_id)
        db.session.add(entry)
        db.session.flush()
        return entry

    return run_in_transaction(_op)


def list_sales(
    *,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    payment_method: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    """Newest first. The range covers `start` through the whole day of `end`."""
    q = db.session.query(Sale)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at < next_day_start(end))
    if payment_method:
        q = q.filter(Sale.payment_method == payment_method)
    total = q.count()
    sales = q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).offset(offset).all()
    return sales, total


def get_sales_stats() -> dict:
    count, revenue, discount, average = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
        func.coalesce(func.sum(Sale.discount_amount_cents), 0),
        func.avg(Sale.total_amount_cents),
    ).one()

    today_count, today_revenue = (
        db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount_cents), 0))
        .filter(Sale.created_at >= start_of_day(utcnow()))
        .one()
    )

    by_method = {method: {"count": 0, "revenue_cents": 0} for method in PAYMENT_METHODS}
    rows = (
        db.session.query(Sale.payment_method, func.count(Sale.id), func.sum(Sale.total_amount_cents))
        .group_by(Sale.payment_method)
        .all()
    )
    for method, method_count, method_revenue in rows:
        by_method[method] = {"count": int(method_count), "revenue_cents": int(method_revenue or 0)}

    quantity_sold = func.sum(Sale.quantity)
    top_rows = (
        db.session.query(
            InventoryItem.id,
            InventoryItem.code,
            InventoryItem.brand,
            InventoryItem.model,
            quantity_sold,
            func.sum(Sale.total_amount_cents),
        )
        .join(Sale, Sale.inventory_id == InventoryItem.id)
        .group_by(InventoryItem.id, InventoryItem.code, InventoryItem.brand, InventoryItem.model)
        .order_by(quantity_sold.desc(), InventoryItem.id.asc())
        .limit(TOP_ITEMS_LIMIT)
        .all()
    )
    top_items = [
        {
            "inventory_id": item_id,
            "code": code,
            "name": f"{brand} {model}",
            "quantity": int(quantity),
            "revenue_cents": int(revenue or 0),
        }
        for item_id, code, brand, model, quantity, revenue in top_rows
    ]

    return {
        "total_sales": int(count),
        "total_revenue_cents": int(revenue),
        "total_discount_cents": int(discount),
        "average_sale_cents": int(round(average)) if average is not None else 0,
        "today_sales": int(today_count),
        "today_revenue_cents": int(today_revenue),
        "payment_methods": by_method,
        "top_items": top_items,
    }
