from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.responses import ApiResponse, ok
from shared.security.rate_limiter import checkout_limit, limiter
from services.order_service.router import get_engine
from services.order_service.service import OrderPlacementEngine

from .schemas import CartItemCreate, CartResponse, CheckoutRequest, CheckoutResponse
from .service import CartService

public_router = APIRouter(prefix="/cart", tags=["Cart"])


def _one(cart) -> dict:
    return CartResponse.model_validate(cart).model_dump()


@public_router.post("", response_model=ApiResponse[CartResponse], status_code=status.HTTP_201_CREATED)
async def create_cart(db: AsyncSession = Depends(get_db)):
    return ok(_one(await CartService.create_cart(db)))


@public_router.get("/{session_id}", response_model=ApiResponse[CartResponse])
async def get_cart(session_id: str, db: AsyncSession = Depends(get_db)):
    return ok(_one(await CartService.get_cart(db, session_id)))


@public_router.post("/{session_id}/items", response_model=ApiResponse[CartResponse])
async def add_item(session_id: str, item: CartItemCreate, db: AsyncSession = Depends(get_db)):
    return ok(_one(await CartService.add_item(db, session_id, item)), message="Item added to cart")


@public_router.delete("/{session_id}/items/{product_id}", response_model=ApiResponse[CartResponse])
async def remove_item(session_id: str, product_id: int, db: AsyncSession = Depends(get_db)):
    return ok(_one(await CartService.remove_item(db, session_id, product_id)), message="Item removed")


@public_router.delete("/{session_id}/items", response_model=ApiResponse[None])
async def clear_cart(session_id: str, db: AsyncSession = Depends(get_db)):
    await CartService.clear_cart(db, session_id)
    return ok(None, message="Cart cleared")


@public_router.post("/{session_id}/checkout", response_model=ApiResponse[CheckoutResponse],
                    status_code=status.HTTP_201_CREATED)
@limiter.limit(checkout_limit)
async def checkout(
    request: Request,
    session_id: str,
    customer: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    engine: OrderPlacementEngine = Depends(get_engine),
):
    order = await CartService.checkout(db, engine, session_id, customer)
    data = CheckoutResponse(order_id=order.id, order_code=order.order_code, total_amount=order.total_amount)
    return ok(data.model_dump(), message=f"Order {order.order_code} placed. Keep this code to track it.")
