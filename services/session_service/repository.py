from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Cart, CartItem


class CartRepository:

    @staticmethod
    async def create_cart(db: AsyncSession, cart: Cart) -> Cart:
        db.add(cart)
        await db.commit()
        await db.refresh(cart)
        return cart

    @staticmethod
    async def get_cart(db: AsyncSession, session_id: str) -> Optional[Cart]:
        result = await db.execute(
            select(Cart).where(Cart.session_id == session_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def add_item(db: AsyncSession, item: CartItem) -> None:
        result = await db.execute(
            select(CartItem)
            .where(CartItem.session_id == item.session_id)
            .where(CartItem.product_id == item.product_id)
        )
        existing_item = result.scalars().first()

        if existing_item:
            existing_item.quantity += item.quantity
        else:
            db.add(item)
        await db.commit()

    @staticmethod
    async def remove_item(db: AsyncSession, session_id: str, product_id: int) -> int:
        result = await db.execute(
            delete(CartItem).where(CartItem.session_id == session_id, CartItem.product_id == product_id)
        )
        await db.commit()
        return result.rowcount

    @staticmethod
    async def clear_cart(db: AsyncSession, session_id: str) -> None:
        await db.execute(delete(CartItem).where(CartItem.session_id == session_id))
        await db.commit()

    @staticmethod
    async def count_active(db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(func.distinct(CartItem.session_id)))
            .join(Cart, Cart.session_id == CartItem.session_id)
            .where(Cart.is_active.is_(True))
        )
        return result.scalar_one()
