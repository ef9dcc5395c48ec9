from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from shared.responses import Money

from .models import OrderStatus


# Semantic checks (positive quantities, existing products, lengths) live in the
# placement engine so that every violation is reported at once.
class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int
    unit_price: Decimal


class OrderHeader(BaseModel):
    customer_name: str
    customer_phone: str
    customer_address: str
    status: Optional[str] = None
    notes: Optional[str] = None
    order_code: Optional[str] = None


class OrderCreate(OrderHeader):
    items: List[OrderItemCreate] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    """Partial header update; only fields the caller sets are written."""

    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class OrderItemUpdate(BaseModel):
    quantity: Optional[int] = None
    unit_price: Optional[Decimal] = None


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    product_description: Optional[str] = None
    product_image: Optional[str] = None
    quantity: int
    unit_price: Money
    total_price: Money
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_code: str
    customer_name: str
    customer_phone: str
    customer_address: str
    total_amount: Money
    status: OrderStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class TrackedItem(BaseModel):
    product_name: Optional[str] = None
    quantity: int
    unit_price: Money
    total_price: Money

    class Config:
        from_attributes = True


class OrderTrackingResponse(BaseModel):
    """What a shopper sees when looking an order up by its code."""

    order_code: str
    customer_name: str
    status: OrderStatus
    total_amount: Money
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[TrackedItem] = []

    class Config:
        from_attributes = True


class SalesStats(BaseModel):
    period: str
    total_orders: int
    total_revenue: Money
    average_order_value: Money
    total_items_sold: int
    first_order: Optional[datetime] = None
    last_order: Optional[datetime] = None


class TopProduct(BaseModel):
    product_id: int
    product_name: str
    order_count: int
    total_quantity_sold: int
    total_revenue: Money
    average_price: Money


class CustomerSummary(BaseModel):
    customer_name: str
    customer_phone: str
    total_orders: int
    total_spent: Money
    average_order_value: Money
    first_order_date: Optional[datetime] = None
    last_order_date: Optional[datetime] = None


class DashboardStats(BaseModel):
    total_products: int
    total_orders: int
    low_stock_products: int
    sales: SalesStats
    top_products: List[TopProduct]
