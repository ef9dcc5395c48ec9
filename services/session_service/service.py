import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFoundError, ValidationError
from shared.observability import shop_active_carts
from services.order_service.models import Order
from services.order_service.schemas import OrderHeader, OrderItemCreate
from services.order_service.service import OrderPlacementEngine
from services.product_service.repository import InventoryStore, ProductRepository

from .models import Cart, CartItem
from .repository import CartRepository
from .schemas import CartItemCreate, CheckoutRequest

logger = structlog.get_logger(__name__)


class CartService:

    @staticmethod
    async def _refresh_gauge(db: AsyncSession) -> None:
        shop_active_carts.set(await CartRepository.count_active(db))

    @staticmethod
    async def create_cart(db: AsyncSession) -> Cart:
        cart = Cart(session_id=str(uuid.uuid4()), is_active=True)
        await CartRepository.create_cart(db, cart)
        logger.info("cart_created", session_id=cart.session_id)
        return await CartService.get_cart(db, cart.session_id)

    @staticmethod
    async def get_cart(db: AsyncSession, session_id: str) -> Cart:
        cart = await CartRepository.get_cart(db, session_id)
        if not cart:
            raise NotFoundError("Cart not found")
        return cart

    @staticmethod
    async def add_item(db: AsyncSession, session_id: str, item_data: CartItemCreate) -> Cart:
        await CartService.get_cart(db, session_id)
        if not await InventoryStore(db).existing_product_ids([item_data.product_id]):
            raise ValidationError.single("product_id", "Product does not exist")

        item = CartItem(session_id=session_id, product_id=item_data.product_id, quantity=item_data.quantity)
        await CartRepository.add_item(db, item)
        await CartService._refresh_gauge(db)
        return await CartService.get_cart(db, session_id)

    @staticmethod
    async def remove_item(db: AsyncSession, session_id: str, product_id: int) -> Cart:
        await CartService.get_cart(db, session_id)
        await CartRepository.remove_item(db, session_id, product_id)
        await CartService._refresh_gauge(db)
        return await CartService.get_cart(db, session_id)

    @staticmethod
    async def clear_cart(db: AsyncSession, session_id: str) -> None:
        await CartService.get_cart(db, session_id)
        await CartRepository.clear_cart(db, session_id)
        await CartService._refresh_gauge(db)

    @staticmethod
    async def checkout(db: AsyncSession, engine: OrderPlacementEngine,
                       session_id: str, customer: CheckoutRequest) -> Order:
        """
        Turn the cart into an order. Each line is priced at the product's
        current effective price; the cart is emptied only once the order is
        committed.
        """
        cart = await CartService.get_cart(db, session_id)
        if not cart.items:
            raise ValidationError.single("items", "Cart is empty")

        items, errors = [], []
        for index, line in enumerate(cart.items):
            product = await ProductRepository.get_product_by_id(db, line.product_id)
            if product is None:
                errors.append({"field": f"items[{index}].product_id", "message": "Product does not exist"})
            elif product.effective_price is None:
                errors.append({"field": f"items[{index}].unit_price", "message": "Product has no price"})
            else:
                items.append(OrderItemCreate(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=product.effective_price,
                ))
        if errors:
            raise ValidationError(errors, message="Cart cannot be checked out")

        # The placement engine opens its own transactions
        await db.rollback()
        header = OrderHeader(**customer.model_dump())
        order_id = await engine.place_order(header, items)

        await CartRepository.clear_cart(db, session_id)
        await CartService._refresh_gauge(db)
        order = await engine.get_order(order_id)
        logger.info("cart_checked_out", session_id=session_id, order_id=order_id, order_code=order.order_code)
        return order
