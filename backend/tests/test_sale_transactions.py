"""Sale transactions: stock, sale row and customer summary move together."""

import pytest

from watchcraft.extensions import db
from watchcraft.models import Customer, InventoryItem, Sale, SaleNote
from watchcraft.services import sales_service
from watchcraft.services.inventory_service import InsufficientStockError
from watchcraft.time_utils import parse_iso_datetime, utcnow
from watchcraft.validation import NotFoundError, ValidationError

from conftest import ACTOR_ID


def _item(item_id):
    return db.session.get(InventoryItem, item_id, populate_existing=True)


def _customer(customer_id):
    return db.session.get(Customer, customer_id, populate_existing=True)


def test_sale_decrements_stock_and_credits_customer(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=5, price_cents=10000)

    sale = sales_service.create_sale(customer.id, item.id, 2, payment_method="Cash", actor_id=ACTOR_ID)

    assert sale.subtotal_cents == 20000
    assert sale.total_amount_cents == 20000
    assert sale.created_by_user_id == ACTOR_ID
    stock = _item(item.id)
    assert stock.quantity == 3
    assert stock.status == "available"
    account = _customer(customer.id)
    assert account.purchases == 1
    assert account.net_value_cents == 20000


def test_selling_the_last_unit_marks_item_sold(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=1)

    sales_service.create_sale(customer.id, item.id, 1, payment_method="Card", actor_id=ACTOR_ID)

    stock = _item(item.id)
    assert stock.quantity == 0
    assert stock.status == "sold"


def test_deleting_a_sale_restores_stock_and_account(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=5, price_cents=10000)
    sale = sales_service.create_sale(customer.id, item.id, 2, payment_method="Cash", actor_id=ACTOR_ID)

    sales_service.delete_sale(sale.id, ACTOR_ID)

    stock = _item(item.id)
    assert stock.quantity == 5
    assert stock.total_sold == 0
    account = _customer(customer.id)
    assert account.purchases == 0
    assert account.net_value_cents == 0
    assert db.session.query(Sale).count() == 0


def test_create_then_delete_round_trip_restores_prior_state(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=4, price_cents=7000)
    keep = sales_service.create_sale(customer.id, item.id, 1, payment_method="UPI", actor_id=ACTOR_ID)
    before_item = _item(item.id).quantity
    before_account = _customer(customer.id).account_summary()

    extra = sales_service.create_sale(
        customer.id, item.id, 2,
        discount={"type": "amount", "value": 500},
        payment_method="Card",
        actor_id=ACTOR_ID,
    )
    sales_service.delete_sale(extra.id, ACTOR_ID)

    assert _item(item.id).quantity == before_item
    assert _customer(customer.id).account_summary() == before_account
    assert sales_service.get_sale(keep.id).id == keep.id


def test_insufficient_stock_writes_nothing(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=1)

    with pytest.raises(InsufficientStockError):
        sales_service.create_sale(customer.id, item.id, 2, payment_method="Cash", actor_id=ACTOR_ID)

    assert _item(item.id).quantity == 1
    assert db.session.query(Sale).count() == 0
    assert _customer(customer.id).purchases == 0


def test_unknown_customer_or_item_is_not_found(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=3)

    with pytest.raises(NotFoundError):
        sales_service.create_sale(99999, item.id, 1, payment_method="Cash")
    with pytest.raises(NotFoundError):
        sales_service.create_sale(customer.id, 99999, 1, payment_method="Cash")

    assert _item(item.id).quantity == 3


def test_sale_input_validation(make_customer, make_item):
    customer = make_customer()
    item = make_item()

    with pytest.raises(ValidationError):
        sales_service.create_sale(customer.id, item.id, 0, payment_method="Cash")
    with pytest.raises(ValidationError):
        sales_service.create_sale(customer.id, item.id, 1, price_cents=0, payment_method="Cash")
    with pytest.raises(ValidationError):
        sales_service.create_sale(customer.id, item.id, 1, payment_method="Barter")
    with pytest.raises(ValidationError):
        sales_service.create_sale(customer.id, item.id, 1, discount={"type": "bogo", "value": 1}, payment_method="Cash")
    with pytest.raises(ValidationError):
        sales_service.create_sale(customer.id, item.id, 1, discount={"type": "amount", "value": -5}, payment_method="Cash")


@pytest.mark.parametrize(
    "discount_type, discount_value, expected_discount",
    [
        ("none", 0, 0),
        ("percentage", 1000, 1000),      # 10% of 10000
        ("percentage", 15000, 10000),    # 150% caps at the subtotal
        ("amount", 2500, 2500),
        ("amount", 50000, 10000),        # flat discount above subtotal caps
    ],
)
def test_compute_amounts_caps_discount(discount_type, discount_value, expected_discount):
    amounts = sales_service.compute_amounts(5000, 2, discount_type, discount_value)

    assert amounts["subtotal_cents"] == 10000
    assert amounts["discount_amount_cents"] == expected_discount
    assert amounts["total_amount_cents"] == 10000 - expected_discount
    assert amounts["total_amount_cents"] >= 0


def test_percentage_discount_rounds_half_up():
    # 12.5% of 333 cents = 41.625 -> 42
    assert sales_service.compute_amounts(333, 1, "percentage", 1250)["discount_amount_cents"] == 42
    # 5% of 10 cents = 0.5 -> 1
    assert sales_service.compute_amounts(10, 1, "percentage", 500)["discount_amount_cents"] == 1


def test_full_discount_sale_has_zero_total(make_customer, make_item):
    customer = make_customer()
    item = make_item(price_cents=4000)

    sale = sales_service.create_sale(
        customer.id, item.id, 1,
        discount={"type": "percentage", "value": 15000},
        payment_method="Cash",
        actor_id=ACTOR_ID,
    )

    assert sale.discount_amount_cents == 4000
    assert sale.total_amount_cents == 0
    assert _customer(customer.id).net_value_cents == 0
    assert _customer(customer.id).purchases == 1


def test_update_quantity_moves_only_the_difference(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=5, price_cents=1000)
    sale = sales_service.create_sale(customer.id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)

    sales_service.update_sale(sale.id, {"quantity": 3}, ACTOR_ID)
    assert _item(item.id).quantity == 2
    assert _customer(customer.id).net_value_cents == 3000

    sales_service.update_sale(sale.id, {"quantity": 2}, ACTOR_ID)
    assert _item(item.id).quantity == 3
    assert _customer(customer.id).net_value_cents == 2000


def test_update_with_insufficient_stock_leaves_everything_untouched(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=2, price_cents=1000)
    other = make_item(quantity=1, price_cents=9000)
    sale = sales_service.create_sale(customer.id, item.id, 2, payment_method="Cash", actor_id=ACTOR_ID)

    with pytest.raises(InsufficientStockError):
        sales_service.update_sale(sale.id, {"inventory_id": other.id, "quantity": 2}, ACTOR_ID)

    assert _item(item.id).quantity == 0
    assert _item(other.id).quantity == 1
    reloaded = sales_service.get_sale(sale.id)
    assert reloaded.inventory_id == item.id
    assert reloaded.total_amount_cents == 2000


def test_update_switches_item_and_uses_its_price(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=2, price_cents=1000)
    other = make_item(quantity=3, price_cents=9000)
    sale = sales_service.create_sale(customer.id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)

    updated = sales_service.update_sale(sale.id, {"inventory_id": other.id}, ACTOR_ID)

    assert updated.price_cents == 9000
    assert _item(item.id).quantity == 2
    assert _item(other.id).quantity == 2
    assert _customer(customer.id).net_value_cents == 9000


def test_update_customer_recomputes_both_accounts(make_customer, make_item):
    alice = make_customer()
    bob = make_customer()
    item = make_item(price_cents=6000)
    sale = sales_service.create_sale(alice.id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)

    sales_service.update_sale(sale.id, {"customer_id": bob.id, "discount": {"type": "amount", "value": 1000}}, ACTOR_ID)

    assert _customer(alice.id).account_summary() == {"net_value_cents": 0, "purchases": 0, "service_count": 0}
    assert _customer(bob.id).account_summary() == {"net_value_cents": 5000, "purchases": 1, "service_count": 0}


def test_delete_missing_sale_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        sales_service.delete_sale(12345, ACTOR_ID)


def test_sales_listing_and_stats(make_customer, make_item):
    customer = make_customer()
    other = make_customer()
    item = make_item(quantity=10, price_cents=1000)
    sales_service.create_sale(customer.id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)
    sales_service.create_sale(customer.id, item.id, 2, payment_method="UPI", actor_id=ACTOR_ID)
    sales_service.create_sale(
        other.id, item.id, 3,
        discount={"type": "amount", "value": 300},
        payment_method="UPI",
        actor_id=ACTOR_ID,
    )

    mine, total = sales_service.list_sales(customer_id=customer.id)
    assert total == 2
    assert {s.quantity for s in mine} == {1, 2}

    _, upi = sales_service.list_sales(payment_method="UPI")
    assert upi == 2

    stats = sales_service.get_sales_stats()
    assert stats["total_sales"] == 3
    assert stats["total_revenue_cents"] == 1000 + 2000 + 2700
    assert stats["total_discount_cents"] == 300
    assert stats["today_sales"] == 3
    assert stats["payment_methods"]["UPI"] == {"count": 2, "revenue_cents": 4700}
    assert stats["payment_methods"]["Cheque"]["count"] == 0
    assert stats["top_items"] == [{
        "inventory_id": item.id,
        "code": item.code,
        "name": f"{item.brand} {item.model}",
        "quantity": 6,
        "revenue_cents": 5700,
    }]


def test_top_items_ranked_by_quantity_sold(make_customer, make_item):
    customer = make_customer()
    pricey = make_item(quantity=5, price_cents=90000)
    cheap = make_item(quantity=5, price_cents=500)
    sales_service.create_sale(customer.id, pricey.id, 1, payment_method="Card", actor_id=ACTOR_ID)
    sales_service.create_sale(customer.id, cheap.id, 3, payment_method="Cash", actor_id=ACTOR_ID)

    top = sales_service.get_sales_stats()["top_items"]

    assert [t["inventory_id"] for t in top] == [cheap.id, pricey.id]
    assert top[0]["quantity"] == 3


def test_date_range_includes_sales_made_on_the_end_day(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=3)
    sale = sales_service.create_sale(customer.id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)
    today = parse_iso_datetime(utcnow().date().isoformat())

    sales, total = sales_service.list_sales(start=today, end=today)

    assert total == 1
    assert sales[0].id == sale.id

    long_ago = parse_iso_datetime("2000-01-01")
    _, none_found = sales_service.list_sales(start=long_ago, end=long_ago)
    assert none_found == 0


@pytest.mark.parametrize("bad_id", ["1", 1.0, 0, -3, True])
def test_sale_ids_must_be_positive_integers(make_customer, make_item, bad_id):
    customer = make_customer()
    item = make_item(quantity=3)

    with pytest.raises(ValidationError):
        sales_service.create_sale(bad_id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)
    with pytest.raises(ValidationError):
        sales_service.create_sale(customer.id, bad_id, 1, payment_method="Cash", actor_id=ACTOR_ID)

    sale = sales_service.create_sale(customer.id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)
    with pytest.raises(ValidationError):
        sales_service.update_sale(sale.id, {"customer_id": bad_id}, ACTOR_ID)
    with pytest.raises(ValidationError):
        sales_service.update_sale(sale.id, {"inventory_id": bad_id}, ACTOR_ID)

    assert _item(item.id).quantity == 2


def test_sale_notes_are_kept_and_removed_with_the_sale(make_customer, make_item):
    customer = make_customer()
    item = make_item(quantity=3)
    sale = sales_service.create_sale(customer.id, item.id, 1, payment_method="Cash", actor_id=ACTOR_ID)

    with pytest.raises(ValidationError):
        sales_service.add_note(sale.id, "   ", ACTOR_ID)
    note = sales_service.add_note(sale.id, "Gift wrapped", ACTOR_ID)

    assert note.added_by_user_id == ACTOR_ID
    assert [n["note"] for n in sales_service.get_sale(sale.id).to_dict(include_notes=True)["notes"]] == ["Gift wrapped"]

    sales_service.delete_sale(sale.id, ACTOR_ID)

    assert db.session.query(SaleNote).count() == 0
    assert _item(item.id).quantity == 3
