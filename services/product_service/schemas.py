from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from shared.responses import Money


class ProductBase(BaseModel):
    @model_validator(mode="after")
    def check_sale_price(self):
        if (
            self.original_price is not None
            and self.sale_price is not None
            and self.sale_price > self.original_price
        ):
            raise ValueError("Sale price must not exceed the original price")
        return self


class ProductCreate(ProductBase):
    name: str = Field(min_length=1, max_length=30)
    description: str = Field(min_length=1)
    original_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    sale_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    quantity: int = Field(default=0, ge=0)
    image: Optional[str] = Field(default=None, max_length=255)


class ProductUpdate(ProductBase):
    """Partial update. Stock is not editable here; use a stock adjustment."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=30)
    description: Optional[str] = Field(default=None, min_length=1)
    original_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    sale_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    image: Optional[str] = Field(default=None, max_length=255)


class StockAdjustment(BaseModel):
    delta: int  # positive restocks, negative removes


class ProductResponse(BaseModel):
    id: int
    name: str
    description: str
    original_price: Optional[Money]
    sale_price: Optional[Money]
    effective_price: Optional[Money]
    quantity: int
    image: Optional[str]
    in_stock: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
