"""Builders for order payloads used across tests."""

from datetime import date, datetime, timezone
from decimal import Decimal

from services.order_service.schemas import OrderHeader, OrderItemCreate

TODAY = date(2024, 3, 15)
NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)


def header(**overrides) -> OrderHeader:
    values = {
        "customer_name": "Jane Doe",
        "customer_phone": "0812-345-678",
        "customer_address": "12 Market Street",
    }
    values.update(overrides)
    return OrderHeader(**values)


def line(product_id, quantity, unit_price="10.00") -> OrderItemCreate:
    return OrderItemCreate(product_id=product_id, quantity=quantity, unit_price=Decimal(unit_price))


def order_payload(*items, **overrides) -> dict:
    payload = header(**overrides).model_dump(exclude_none=True)
    payload["items"] = [
        {"product_id": pid, "quantity": qty, "unit_price": price} for pid, qty, price in items
    ]
    return payload
