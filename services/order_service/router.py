from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from shared.config.settings import get_settings
from shared.errors import NotFoundError
from shared.responses import ApiResponse, ok
from shared.security.dependencies import require_admin

from .schemas import (
    CustomerSummary, DashboardStats, OrderCreate, OrderItemCreate, OrderItemUpdate, OrderResponse,
    OrderTrackingResponse, OrderUpdate, SalesStats,
)
from .service import OrderPlacementEngine

router = APIRouter(prefix="/orders", tags=["Orders (admin)"], dependencies=[Depends(require_admin)])
public_router = APIRouter(prefix="/orders", tags=["Orders"])


def get_engine(request: Request) -> OrderPlacementEngine:
    return request.app.state.engine


def _one(order) -> dict:
    return OrderResponse.model_validate(order).model_dump()


@public_router.get("/track/{order_code}", response_model=ApiResponse[OrderTrackingResponse])
async def track_order(order_code: str, engine: OrderPlacementEngine = Depends(get_engine)):
    order = await engine.get_order_by_code(order_code)
    return ok(OrderTrackingResponse.model_validate(order).model_dump())


@router.get("", response_model=ApiResponse[List[OrderResponse]])
async def list_orders(
    search: Optional[str] = None,
    phone: Optional[str] = None,
    order_status: Optional[str] = Query(default=None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    engine: OrderPlacementEngine = Depends(get_engine),
):
    orders = await engine.list_orders(limit, offset, search=search, phone=phone,
                                      status=order_status, start=start_date, end=end_date)
    return ok([_one(o) for o in orders], count=len(orders))


@router.post("", response_model=ApiResponse[OrderResponse], status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreate, engine: OrderPlacementEngine = Depends(get_engine)):
    order_id = await engine.place_order(payload, payload.items)
    order = await engine.get_order(order_id)
    return ok(_one(order), message=f"Order {order.order_code} created successfully")


# Static paths are declared before /{order_id} so they are not read as ids
@router.get("/stats/dashboard", response_model=ApiResponse[DashboardStats])
async def dashboard(engine: OrderPlacementEngine = Depends(get_engine)):
    stats = await engine.dashboard_stats(low_stock_threshold=get_settings().low_stock_threshold)
    return ok(DashboardStats.model_validate(stats).model_dump())


@router.get("/stats/sales", response_model=ApiResponse[SalesStats])
async def sales(period: str = "month", engine: OrderPlacementEngine = Depends(get_engine)):
    stats = await engine.sales_stats(period)
    return ok(SalesStats.model_validate(stats).model_dump())


@router.get("/stats/customer", response_model=ApiResponse[CustomerSummary])
async def customer(phone: str, engine: OrderPlacementEngine = Depends(get_engine)):
    summary = await engine.customer_summary(phone)
    return ok(CustomerSummary.model_validate(summary).model_dump())


@router.patch("/items/{item_id}", response_model=ApiResponse[OrderResponse])
async def update_item(item_id: int, payload: OrderItemUpdate,
                      engine: OrderPlacementEngine = Depends(get_engine)):
    order = await engine.update_item(item_id, payload)
    return ok(_one(order), message="Order item updated")


@router.delete("/items/{item_id}", response_model=ApiResponse[None])
async def remove_item(item_id: int, engine: OrderPlacementEngine = Depends(get_engine)):
    if not await engine.remove_item(item_id):
        raise NotFoundError(f"Order item {item_id} not found")
    return ok(None, message="Order item removed")


@router.get("/{order_id}", response_model=ApiResponse[OrderResponse])
async def get_order(order_id: int, engine: OrderPlacementEngine = Depends(get_engine)):
    return ok(_one(await engine.get_order(order_id)))


@router.patch("/{order_id}", response_model=ApiResponse[OrderResponse])
async def update_order(order_id: int, payload: OrderUpdate,
                       engine: OrderPlacementEngine = Depends(get_engine)):
    order = await engine.update_order(order_id, payload)
    return ok(_one(order), message="Order updated successfully")


@router.delete("/{order_id}", response_model=ApiResponse[None])
async def delete_order(order_id: int, engine: OrderPlacementEngine = Depends(get_engine)):
    if not await engine.delete_order(order_id):
        raise NotFoundError(f"Order {order_id} not found")
    return ok(None, message="Order deleted and stock restored")


@router.post("/{order_id}/items", response_model=ApiResponse[OrderResponse],
             status_code=status.HTTP_201_CREATED)
async def add_item(order_id: int, item: OrderItemCreate,
                   engine: OrderPlacementEngine = Depends(get_engine)):
    order = await engine.add_item(order_id, item)
    return ok(_one(order), message="Order item added")
