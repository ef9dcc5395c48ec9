from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product

NOT_FOUND = "not found"
INSUFFICIENT_STOCK = "insufficient stock"


class ProductRepository:

    @staticmethod
    async def create_product(db: AsyncSession, product: Product):
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    @staticmethod
    async def get_all_products(db: AsyncSession, limit: Optional[int] = None, offset: int = 0):
        stmt = select(Product).order_by(Product.created_at.desc(), Product.id.desc())
        if limit:
            stmt = stmt.limit(limit).offset(offset)
        result = await db.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int):
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalars().first()

    @staticmethod
    async def search_products(db: AsyncSession, term: str):
        pattern = f"%{term}%"
        result = await db.execute(
            select(Product)
            .where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
            .order_by(Product.name.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_in_stock(db: AsyncSession):
        result = await db.execute(
            select(Product).where(Product.quantity > 0).order_by(Product.name.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_low_stock(db: AsyncSession, threshold: int):
        result = await db.execute(
            select(Product).where(Product.quantity <= threshold).order_by(Product.quantity.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def update_product(db: AsyncSession, product: Product):
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    @staticmethod
    async def delete_product(db: AsyncSession, product: Product):
        await db.delete(product)
        await db.commit()

    @staticmethod
    async def count_products(db: AsyncSession) -> int:
        result = await db.execute(select(func.count(Product.id)))
        return result.scalar_one()


@dataclass
class StockStatus:
    product_id: int
    available: bool
    current_stock: int
    requested: int
    product_name: Optional[str] = None
    reason: Optional[str] = None

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.current_stock, 0)

    def as_detail(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "requested": self.requested,
            "available": self.current_stock,
            "shortfall": self.shortfall,
            "reason": self.reason,
        }


class InventoryStore:
    """
    Live stock for products, bound to one session (and so to its transaction).

    Stock only moves through decrement/increment. A decrement is a single
    conditional UPDATE, so two orders racing for the last units cannot both
    win: the database evaluates ``quantity >= :qty`` under its row lock and
    the loser sees zero affected rows.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def existing_product_ids(self, product_ids: Iterable[int]) -> set[int]:
        ids = list(set(product_ids))
        if not ids:
            return set()
        result = await self.db.execute(select(Product.id).where(Product.id.in_(ids)))
        return set(result.scalars())

    async def check_availability(self, requests: Mapping[int, int]) -> dict[int, StockStatus]:
        if not requests:
            return {}
        result = await self.db.execute(
            select(Product.id, Product.name, Product.quantity).where(Product.id.in_(list(requests)))
        )
        rows = {row.id: row for row in result}

        availability = {}
        for product_id, requested in requests.items():
            row = rows.get(product_id)
            if row is None:
                availability[product_id] = StockStatus(
                    product_id=product_id,
                    available=False,
                    current_stock=0,
                    requested=requested,
                    reason=NOT_FOUND,
                )
            elif row.quantity < requested:
                availability[product_id] = StockStatus(
                    product_id=product_id,
                    available=False,
                    current_stock=row.quantity,
                    requested=requested,
                    product_name=row.name,
                    reason=INSUFFICIENT_STOCK,
                )
            else:
                availability[product_id] = StockStatus(
                    product_id=product_id,
                    available=True,
                    current_stock=row.quantity,
                    requested=requested,
                    product_name=row.name,
                )
        return availability

    async def decrement(self, product_id: int, quantity: int) -> bool:
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.quantity >= quantity)
            .values(quantity=Product.quantity - quantity, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def decrement_many(self, requests: Mapping[int, int]) -> list[int]:
        """Decrement every entry. Returns the product ids that could not be decremented."""
        failed = []
        # Rows are always locked in ascending id order
        for product_id in sorted(requests):
            quantity = requests[product_id]
            if not await self.decrement(product_id, quantity):
                failed.append(product_id)
        return failed

    async def increment(self, product_id: int, quantity: int) -> int:
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(quantity=Product.quantity + quantity, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def increment_many(self, requests: Mapping[int, int]) -> int:
        restored = 0
        for product_id in sorted(requests):
            restored += await self.increment(product_id, requests[product_id])
        return restored
