"""Tests for the catalogue endpoints."""

import pytest

from .helpers import header, line

TOTE = {
    "name": "Canvas Tote",
    "description": "Heavy canvas tote bag",
    "original_price": "29.99",
    "sale_price": "24.99",
    "quantity": 8,
}


@pytest.mark.asyncio
async def test_create_and_fetch_product(client, admin_headers):
    response = await client.post("/products", json=TOTE, headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Product created successfully"
    product = body["data"]
    assert product["effective_price"] == 24.99
    assert product["in_stock"] is True

    fetched = await client.get(f"/products/{product['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["name"] == "Canvas Tote"


@pytest.mark.asyncio
async def test_catalogue_is_public_but_admin_routes_are_not(client, make_product):
    await make_product()

    listed = await client.get("/products")
    assert listed.status_code == 200
    assert listed.json()["count"] == 1

    denied = await client.post("/products", json=TOTE)
    assert denied.status_code == 401
    assert denied.json()["success"] is False


@pytest.mark.asyncio
async def test_non_admin_token_is_forbidden(client):
    from shared.security import create_access_token

    token = create_access_token({"sub": "7", "role": "staff"})
    response = await client.get("/products/low_stock", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_search_and_in_stock_filters(client, make_product):
    await make_product("Canvas Tote", quantity=3)
    await make_product("Trucker Cap", quantity=0)

    searched = await client.get("/products", params={"search": "cap"})
    assert [p["name"] for p in searched.json()["data"]] == ["Trucker Cap"]

    in_stock = await client.get("/products", params={"in_stock": "true"})
    assert [p["name"] for p in in_stock.json()["data"]] == ["Canvas Tote"]


@pytest.mark.asyncio
async def test_low_stock_uses_threshold(client, admin_headers, make_product):
    await make_product("Canvas Tote", quantity=3)
    await make_product("Trucker Cap", quantity=40)

    response = await client.get("/products/low_stock", headers=admin_headers)

    assert response.status_code == 200
    assert [p["name"] for p in response.json()["data"]] == ["Canvas Tote"]


@pytest.mark.asyncio
async def test_create_product_validation(client, admin_headers):
    too_cheap = dict(TOTE, sale_price="39.99")
    response = await client.post("/products", json=too_cheap, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"

    long_name = dict(TOTE, name="x" * 31)
    response = await client.post("/products", json=long_name, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"]["details"][0]["field"] == "name"


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields(client, admin_headers, make_product):
    product_id = await make_product(quantity=4)

    response = await client.patch(
        f"/products/{product_id}", json={"sale_price": "19.99"}, headers=admin_headers
    )

    product = response.json()["data"]
    assert response.status_code == 200
    assert product["sale_price"] == 19.99
    assert product["original_price"] == 29.99
    assert product["quantity"] == 4


@pytest.mark.asyncio
async def test_update_cannot_raise_sale_above_original(client, admin_headers, make_product):
    product_id = await make_product(original_price="10.00")

    response = await client.patch(
        f"/products/{product_id}", json={"sale_price": "12.00"}, headers=admin_headers
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_adjust_stock(client, admin_headers, make_product, stock_of):
    product_id = await make_product(quantity=2)

    restocked = await client.post(
        f"/products/{product_id}/adjust_stock", json={"delta": 5}, headers=admin_headers
    )
    assert restocked.json()["data"]["quantity"] == 7

    too_many = await client.post(
        f"/products/{product_id}/adjust_stock", json={"delta": -10}, headers=admin_headers
    )
    assert too_many.status_code == 409
    assert too_many.json()["error"]["code"] == "stock_unavailable"
    assert await stock_of(product_id) == 7


@pytest.mark.asyncio
async def test_delete_product(client, admin_headers, make_product, engine):
    unused = await make_product("Trucker Cap")
    ordered = await make_product("Canvas Tote", quantity=5)
    await engine.place_order(header(), [line(ordered, 1)])

    assert (await client.delete(f"/products/{unused}", headers=admin_headers)).status_code == 200
    assert (await client.get(f"/products/{unused}")).status_code == 404

    refused = await client.delete(f"/products/{ordered}", headers=admin_headers)
    assert refused.status_code == 400
