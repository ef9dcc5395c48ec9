from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.config.settings import get_settings
from shared.responses import ApiResponse, ok
from shared.security.dependencies import require_admin

from .schemas import ProductCreate, ProductResponse, ProductUpdate, StockAdjustment
from .service import ProductService

router = APIRouter(prefix="/products", tags=["Products (admin)"], dependencies=[Depends(require_admin)])
public_router = APIRouter(prefix="/products", tags=["Products"])


def _one(product) -> dict:
    return ProductResponse.model_validate(product).model_dump()


def _many(products) -> list[dict]:
    return [_one(p) for p in products]


@public_router.get("", response_model=ApiResponse[List[ProductResponse]])
async def list_products(
    query: Optional[str] = Query(default=None, alias="search"),
    in_stock: bool = False,
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    products = await ProductService.list_products(db, limit, offset, query=query, in_stock=in_stock)
    return ok(_many(products), count=len(products))


@router.get("/low_stock", response_model=ApiResponse[List[ProductResponse]])
async def low_stock(
    threshold: Optional[int] = Query(default=None, ge=0),
    db: AsyncSession = Depends(get_db),
):
    if threshold is None:
        threshold = get_settings().low_stock_threshold
    products = await ProductService.low_stock(db, threshold)
    return ok(_many(products), count=len(products))


@public_router.get("/{product_id}", response_model=ApiResponse[ProductResponse])
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return ok(_one(await ProductService.get_product(db, product_id)))


@router.post("", response_model=ApiResponse[ProductResponse], status_code=status.HTTP_201_CREATED)
async def create_product(product: ProductCreate, db: AsyncSession = Depends(get_db)):
    created = await ProductService.create_product(db, product)
    return ok(_one(created), message="Product created successfully")


@router.patch("/{product_id}", response_model=ApiResponse[ProductResponse])
async def update_product(product_id: int, payload: ProductUpdate, db: AsyncSession = Depends(get_db)):
    updated = await ProductService.update_product(db, product_id, payload)
    return ok(_one(updated), message="Product updated successfully")


@router.delete("/{product_id}", response_model=ApiResponse[None])
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db)):
    await ProductService.delete_product(db, product_id)
    return ok(None, message="Product deleted successfully")


@router.post("/{product_id}/adjust_stock", response_model=ApiResponse[ProductResponse])
async def adjust_stock(product_id: int, payload: StockAdjustment, db: AsyncSession = Depends(get_db)):
    product = await ProductService.adjust_stock(db, product_id, payload.delta)
    return ok(_one(product), message="Stock adjusted")
