from typing import List, Optional

from pydantic import BaseModel, Field

from shared.responses import Money


class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(default=1, gt=0)


class CartItemResponse(BaseModel):
    product_id: int
    quantity: int

    class Config:
        from_attributes = True


class CartResponse(BaseModel):
    session_id: str
    is_active: bool
    items: List[CartItemResponse] = []

    class Config:
        from_attributes = True


class CheckoutRequest(BaseModel):
    """Customer details the cart itself does not know."""

    customer_name: str
    customer_phone: str
    customer_address: str
    notes: Optional[str] = None


class CheckoutResponse(BaseModel):
    order_id: int
    order_code: str
    total_amount: Money
