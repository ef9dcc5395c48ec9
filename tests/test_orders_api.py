"""Tests for the order endpoints: status mapping and response envelopes."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from shared.config.settings import Settings

from .helpers import order_payload


@pytest.mark.asyncio
async def test_create_order(client, admin_headers, make_product, stock_of):
    tote = await make_product(quantity=5)

    response = await client.post(
        "/orders", json=order_payload((tote, 3, "19.99")), headers=admin_headers
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    order = body["data"]
    assert order["order_code"].startswith("ORD-")
    assert order["total_amount"] == 59.97
    assert order["status"] == "pending"
    assert order["items"][0]["product_name"] == "Canvas Tote"
    assert await stock_of(tote) == 2


@pytest.mark.asyncio
async def test_insufficient_stock_is_a_conflict(client, admin_headers, make_product):
    tote = await make_product(quantity=2)

    response = await client.post(
        "/orders", json=order_payload((tote, 3, "10.00")), headers=admin_headers
    )

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "stock_unavailable"
    assert error["details"][0]["shortfall"] == 1


@pytest.mark.asyncio
async def test_invalid_order_lists_violations(client, admin_headers, make_product):
    tote = await make_product(quantity=2)
    payload = order_payload((tote, 0, "10.00"), customer_name="")

    response = await client.post("/orders", json=payload, headers=admin_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert {d["field"] for d in body["error"]["details"]} == {"customer_name", "items[0].quantity"}


@pytest.mark.asyncio
async def test_malformed_body_is_a_validation_error(client, admin_headers):
    response = await client.post("/orders", json={"customer_name": "Jane"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


@pytest.mark.asyncio
async def test_orders_require_admin(client, make_product):
    tote = await make_product(quantity=2)

    response = await client.post("/orders", json=order_payload((tote, 1, "10.00")))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_tracking_hides_contact_details(client, admin_headers, make_product):
    tote = await make_product(quantity=5)
    created = await client.post(
        "/orders", json=order_payload((tote, 1, "10.00")), headers=admin_headers
    )
    code = created.json()["data"]["order_code"]

    response = await client.get(f"/orders/track/{code}")

    assert response.status_code == 200
    tracked = response.json()["data"]
    assert tracked["order_code"] == code
    assert "customer_phone" not in tracked
    assert "customer_address" not in tracked
    assert (await client.get("/orders/track/ORD-19990101-001")).status_code == 404


@pytest.mark.asyncio
async def test_update_and_delete_order(client, admin_headers, make_product, stock_of):
    tote = await make_product(quantity=5)
    created = await client.post(
        "/orders", json=order_payload((tote, 2, "10.00")), headers=admin_headers
    )
    order_id = created.json()["data"]["id"]

    updated = await client.patch(
        f"/orders/{order_id}", json={"status": "shipped"}, headers=admin_headers
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["status"] == "shipped"

    deleted = await client.delete(f"/orders/{order_id}", headers=admin_headers)
    assert deleted.status_code == 200
    assert await stock_of(tote) == 5
    assert (await client.delete(f"/orders/{order_id}", headers=admin_headers)).status_code == 404
    assert (await client.get(f"/orders/{order_id}", headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_item_routes(client, admin_headers, make_product, stock_of):
    tote = await make_product("Canvas Tote", quantity=5)
    cap = await make_product("Trucker Cap", quantity=5)
    created = await client.post(
        "/orders", json=order_payload((tote, 1, "10.00")), headers=admin_headers
    )
    order_id = created.json()["data"]["id"]

    added = await client.post(
        f"/orders/{order_id}/items",
        json={"product_id": cap, "quantity": 2, "unit_price": "5.00"},
        headers=admin_headers,
    )
    assert added.status_code == 201
    assert added.json()["data"]["total_amount"] == 20.0
    cap_item = [i for i in added.json()["data"]["items"] if i["product_id"] == cap][0]

    changed = await client.patch(
        f"/orders/items/{cap_item['id']}", json={"quantity": 3}, headers=admin_headers
    )
    assert changed.json()["data"]["total_amount"] == 25.0
    assert await stock_of(cap) == 2

    removed = await client.delete(f"/orders/items/{cap_item['id']}", headers=admin_headers)
    assert removed.status_code == 200
    assert await stock_of(cap) == 5


@pytest.mark.asyncio
async def test_list_and_statistics(client, admin_headers, make_product):
    tote = await make_product(quantity=10)
    for _ in range(2):
        await client.post("/orders", json=order_payload((tote, 2, "10.00")), headers=admin_headers)

    listed = await client.get("/orders", headers=admin_headers)
    assert listed.json()["count"] == 2

    sales = await client.get("/orders/stats/sales", params={"period": "all"}, headers=admin_headers)
    assert sales.json()["data"]["total_revenue"] == 40.0

    dashboard = await client.get("/orders/stats/dashboard", headers=admin_headers)
    assert dashboard.status_code == 200
    assert dashboard.json()["data"]["total_orders"] == 2

    bad_period = await client.get("/orders/stats/sales", params={"period": "decade"}, headers=admin_headers)
    assert bad_period.status_code == 400


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.json() == {"service": "shopfront", "status": "running"}


@pytest.mark.asyncio
async def test_date_filter_accepts_last_representable_day(client, admin_headers, make_product):
    tote = await make_product(quantity=5)
    await client.post("/orders", json=order_payload((tote, 1, "10.00")), headers=admin_headers)

    response = await client.get(
        "/orders",
        params={"start_date": "2000-01-01", "end_date": "9999-12-31"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["count"] == 1


async def _post_order_without_items_table(database, make_product, admin_headers, debug):
    from main import create_app

    tote = await make_product(quantity=5)
    async with database.engine.begin() as conn:
        await conn.execute(text("DROP TABLE order_items"))

    settings = Settings(
        database_url=database.url,
        jwt_secret_key="test-secret-key",
        metrics_enabled=False,
        debug=debug,
    )
    app = create_app(settings=settings, database=database)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        return await http.post("/orders", json=order_payload((tote, 1, "10.00")), headers=admin_headers)


@pytest.mark.asyncio
async def test_storage_failure_hides_cause(database, make_product, admin_headers):
    response = await _post_order_without_items_table(database, make_product, admin_headers, debug=False)

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": {"code": "storage_error", "message": "An internal error occurred"},
    }
    assert "order_items" not in response.text


@pytest.mark.asyncio
async def test_storage_failure_shows_cause_in_debug(database, make_product, admin_headers):
    response = await _post_order_without_items_table(database, make_product, admin_headers, debug=True)

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "storage_error"
    assert "order_items" in error["details"]["cause"]
