"""Tests for the session cart and checkout."""

import pytest

CUSTOMER = {
    "customer_name": "Jane Doe",
    "customer_phone": "0812-345-678",
    "customer_address": "12 Market Street",
}


async def _new_cart(client) -> str:
    response = await client.post("/cart")
    assert response.status_code == 201
    return response.json()["data"]["session_id"]


@pytest.mark.asyncio
async def test_adding_same_product_merges_quantity(client, make_product):
    tote = await make_product()
    session_id = await _new_cart(client)

    await client.post(f"/cart/{session_id}/items", json={"product_id": tote, "quantity": 2})
    response = await client.post(f"/cart/{session_id}/items", json={"product_id": tote, "quantity": 1})

    assert response.status_code == 200
    assert response.json()["data"]["items"] == [{"product_id": tote, "quantity": 3}]


@pytest.mark.asyncio
async def test_unknown_product_or_cart(client):
    session_id = await _new_cart(client)

    unknown_product = await client.post(f"/cart/{session_id}/items", json={"product_id": 404, "quantity": 1})
    assert unknown_product.status_code == 400

    unknown_cart = await client.get("/cart/not-a-cart")
    assert unknown_cart.status_code == 404
    assert unknown_cart.json()["error"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_remove_and_clear(client, make_product):
    tote = await make_product("Canvas Tote")
    cap = await make_product("Trucker Cap")
    session_id = await _new_cart(client)
    await client.post(f"/cart/{session_id}/items", json={"product_id": tote, "quantity": 1})
    await client.post(f"/cart/{session_id}/items", json={"product_id": cap, "quantity": 1})

    removed = await client.delete(f"/cart/{session_id}/items/{tote}")
    assert [i["product_id"] for i in removed.json()["data"]["items"]] == [cap]

    cleared = await client.delete(f"/cart/{session_id}/items")
    assert cleared.status_code == 200
    assert (await client.get(f"/cart/{session_id}")).json()["data"]["items"] == []


@pytest.mark.asyncio
async def test_checkout_places_order_at_current_price(client, make_product, stock_of):
    tote = await make_product("Canvas Tote", quantity=5, original_price="29.99", sale_price="24.99")
    cap = await make_product("Trucker Cap", quantity=5, original_price="15.00")
    session_id = await _new_cart(client)
    await client.post(f"/cart/{session_id}/items", json={"product_id": tote, "quantity": 2})
    await client.post(f"/cart/{session_id}/items", json={"product_id": cap, "quantity": 1})

    response = await client.post(f"/cart/{session_id}/checkout", json=CUSTOMER)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["order_code"].startswith("ORD-")
    assert data["total_amount"] == 64.98
    assert await stock_of(tote) == 3
    assert await stock_of(cap) == 4
    assert (await client.get(f"/cart/{session_id}")).json()["data"]["items"] == []

    tracked = await client.get(f"/orders/track/{data['order_code']}")
    assert tracked.json()["data"]["total_amount"] == 64.98


@pytest.mark.asyncio
async def test_checkout_empty_cart(client):
    session_id = await _new_cart(client)

    response = await client.post(f"/cart/{session_id}/checkout", json=CUSTOMER)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_failed_checkout_keeps_cart(client, make_product, stock_of):
    tote = await make_product(quantity=1)
    session_id = await _new_cart(client)
    await client.post(f"/cart/{session_id}/items", json={"product_id": tote, "quantity": 2})

    response = await client.post(f"/cart/{session_id}/checkout", json=CUSTOMER)

    assert response.status_code == 409
    assert await stock_of(tote) == 1
    assert (await client.get(f"/cart/{session_id}")).json()["data"]["items"] == [
        {"product_id": tote, "quantity": 2},
    ]
