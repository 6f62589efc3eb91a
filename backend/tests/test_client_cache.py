"""ShopClient cache: populated only from server responses, never self-computed."""

import httpx
import pytest

from watchcraft.client import ShopCache, ShopClient, ShopClientError

from conftest import ACTOR_ID


@pytest.fixture
def shop(app, db_session):
    client = ShopClient(
        base_url="http://watchcraft.test",
        actor_id=ACTOR_ID,
        transport=httpx.WSGITransport(app=app),
    )
    yield client
    client.close()


def _seed(shop):
    item = shop.create_item({
        "code": "cache-1",
        "type": "Clock",
        "brand": "Ajanta",
        "model": "Wall 12",
        "price_cents": 3000,
        "quantity": 4,
        "outlet": "Padur",
    })
    customer = shop.create_customer({"name": "Cache Reader", "email": "cache@example.com", "phone": "9833333333"})
    return item, customer


def test_sale_response_refreshes_cached_customer_and_item(shop):
    item, customer = _seed(shop)
    assert shop.cache.customers[customer["id"]]["net_value_cents"] == 0

    sale = shop.create_sale(
        customer_id=customer["id"],
        inventory_id=item["id"],
        quantity=2,
        payment_method="Card",
    )

    assert shop.cache.sales[sale["id"]]["total_amount_cents"] == 6000
    assert shop.cache.customers[customer["id"]]["net_value_cents"] == 6000
    assert shop.cache.items[item["id"]]["quantity"] == 2

    shop.delete_sale(sale["id"])

    assert sale["id"] not in shop.cache.sales
    assert shop.cache.customers[customer["id"]]["net_value_cents"] == 0
    assert shop.cache.items[item["id"]]["quantity"] == 4


def test_failed_request_leaves_cache_untouched(shop):
    item, customer = _seed(shop)
    snapshot = dict(shop.cache.items[item["id"]])

    with pytest.raises(ShopClientError) as exc:
        shop.create_sale(
            customer_id=customer["id"],
            inventory_id=item["id"],
            quantity=99,
            payment_method="Cash",
        )

    assert exc.value.status_code == 409
    assert exc.value.details["available_quantity"] == 4
    assert shop.cache.items[item["id"]] == snapshot


def test_service_completion_updates_cached_customer(shop):
    _, customer = _seed(shop)
    service = shop.create_service({
        "customer_id": customer["id"],
        "brand": "HMT",
        "model": "Janata",
        "dial_color": "White",
        "movement_no": "0231",
        "gender": "Male",
        "case_type": "Steel",
        "strap_type": "Leather",
        "issue": "Hand winding stiff",
        "cost_cents": 50000,
    })
    shop.update_service_status(service["id"], "in-progress")

    done = shop.complete_service(service["id"], description="Overhauled", final_cost_cents=45000)

    assert done["status"] == "completed"
    assert shop.cache.services[service["id"]]["status"] == "completed"
    assert shop.cache.customers[customer["id"]]["net_value_cents"] == 45000


def test_listing_fills_cache(shop):
    _seed(shop)
    shop.cache.clear()

    items = shop.list_items(outlet="Padur")

    assert len(items) == 1
    assert shop.cache.items[items[0]["id"]]["code"] == "CACHE-1"


def test_cache_absorb_ignores_bodies_without_entities():
    cache = ShopCache()
    cache.absorb({"deleted": True, "sale_id": 3})
    assert cache.sales == {}
