from datetime import date, datetime, time
from typing import Optional, Sequence

from sqlalchemy import delete, distinct, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.errors import ValidationError
from services.product_service.models import Product

from .models import Order, OrderItem, OrderStatus
from .pricing import ZERO, line_total, money, order_total
from .schemas import OrderHeader, OrderItemCreate, OrderItemUpdate, OrderUpdate

HEADER_FIELDS = ("customer_name", "customer_phone", "customer_address", "status", "notes")


class OrderLedger:
    """
    Storage for order aggregates (header + line items), bound to one session.

    The ledger never touches stock and never commits: the placement engine
    owns the transaction and pairs every ledger write with the matching
    inventory movement.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _with_items(stmt):
        return stmt.options(
            selectinload(Order.items).selectinload(OrderItem.product)
        ).execution_options(populate_existing=True)

    # --- Header -------------------------------------------------------------

    async def create_order(self, order_code: str, header: OrderHeader,
                           items: Sequence[OrderItemCreate]) -> int:
        totals = [line_total(item.quantity, item.unit_price) for item in items]
        order = Order(
            order_code=order_code,
            customer_name=header.customer_name,
            customer_phone=header.customer_phone,
            customer_address=header.customer_address,
            total_amount=order_total(totals),
            status=OrderStatus(header.status or OrderStatus.PENDING.value),
            notes=header.notes,
        )
        self.db.add(order)
        await self.db.flush()  # a duplicate order_code surfaces here as IntegrityError

        for item, total in zip(items, totals):
            self.db.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=money(item.unit_price),
                total_price=total,
            ))
        await self.db.flush()
        return order.id

    async def read_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.db.execute(self._with_items(select(Order).where(Order.id == order_id)))
        return result.scalars().first()

    async def read_by_code(self, order_code: str) -> Optional[Order]:
        result = await self.db.execute(
            self._with_items(select(Order).where(Order.order_code == order_code))
        )
        return result.scalars().first()

    async def read_all(self, limit: Optional[int] = None, offset: int = 0) -> list[Order]:
        stmt = self._with_items(select(Order).order_by(Order.created_at.desc(), Order.id.desc()))
        if limit:
            stmt = stmt.limit(limit).offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def search(self, term: str) -> list[Order]:
        pattern = f"%{term}%"
        stmt = self._with_items(
            select(Order)
            .where(or_(
                Order.customer_name.ilike(pattern),
                Order.customer_phone.like(pattern),
                Order.order_code.ilike(pattern),
            ))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_phone(self, phone: str) -> list[Order]:
        stmt = self._with_items(
            select(Order)
            .where(Order.customer_phone.like(f"%{phone}%"))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_status(self, status: OrderStatus) -> list[Order]:
        stmt = self._with_items(
            select(Order).where(Order.status == status).order_by(Order.created_at.desc(), Order.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_date_range(self, start: date, end: date) -> list[Order]:
        stmt = self._with_items(
            select(Order)
            .where(
                Order.created_at >= datetime.combine(start, time.min),
                Order.created_at <= datetime.combine(end, time.max),
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(Order.id)))
        return result.scalar_one()

    async def exists(self, order_id: int) -> bool:
        result = await self.db.execute(select(exists().where(Order.id == order_id)))
        return bool(result.scalar())

    async def code_exists(self, order_code: str) -> bool:
        result = await self.db.execute(select(exists().where(Order.order_code == order_code)))
        return bool(result.scalar())

    async def update_header(self, order_id: int, changes: OrderUpdate) -> int:
        fields = {
            name: value
            for name, value in changes.model_dump(exclude_unset=True).items()
            if name in HEADER_FIELDS
        }
        if not fields:
            raise ValidationError.single("body", "No valid fields to update")
        if "status" in fields:
            fields["status"] = OrderStatus(fields["status"])

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(**fields, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_order(self, order_id: int) -> int:
        await self.db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
        result = await self.db.execute(delete(Order).where(Order.id == order_id))
        return result.rowcount

    # --- Items --------------------------------------------------------------

    async def get_items(self, order_id: int) -> list[OrderItem]:
        result = await self.db.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .options(selectinload(OrderItem.product))
            .order_by(OrderItem.id)
        )
        return list(result.scalars().all())

    async def get_item(self, item_id: int) -> Optional[OrderItem]:
        result = await self.db.execute(
            select(OrderItem)
            .where(OrderItem.id == item_id)
            .options(selectinload(OrderItem.product))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def add_item(self, order_id: int, item: OrderItemCreate) -> int:
        row = OrderItem(
            order_id=order_id,
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=money(item.unit_price),
            total_price=line_total(item.quantity, item.unit_price),
        )
        self.db.add(row)
        await self.db.flush()
        await self.recalculate_total(order_id)
        return row.id

    async def update_item(self, item_id: int, changes: OrderItemUpdate) -> int:
        fields = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}
        if not fields:
            raise ValidationError.single("body", "No valid fields to update")

        current = await self.get_item(item_id)
        if current is None:
            return 0
        quantity = fields.get("quantity", current.quantity)
        unit_price = money(fields.get("unit_price", current.unit_price))

        result = await self.db.execute(
            update(OrderItem)
            .where(OrderItem.id == item_id)
            .values(quantity=quantity, unit_price=unit_price, total_price=line_total(quantity, unit_price))
            .execution_options(synchronize_session=False)
        )
        await self.recalculate_total(current.order_id)
        return result.rowcount

    async def remove_item(self, item_id: int) -> int:
        current = await self.get_item(item_id)
        if current is None:
            return 0
        result = await self.db.execute(delete(OrderItem).where(OrderItem.id == item_id))
        await self.recalculate_total(current.order_id)
        return result.rowcount

    async def recalculate_total(self, order_id: int):
        result = await self.db.execute(
            select(OrderItem.total_price).where(OrderItem.order_id == order_id)
        )
        total = order_total(money(value) for value in result.scalars())
        await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(total_amount=total, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return total

    # --- Statistics ---------------------------------------------------------

    async def sales_stats(self, since: Optional[datetime]) -> dict:
        order_filter = [Order.created_at >= since] if since is not None else []

        result = await self.db.execute(
            select(
                func.count(Order.id),
                func.sum(Order.total_amount),
                func.min(Order.created_at),
                func.max(Order.created_at),
            ).where(*order_filter)
        )
        total_orders, revenue, first_order, last_order = result.one()

        items = await self.db.execute(
            select(func.coalesce(func.sum(OrderItem.quantity), 0))
            .join(Order, Order.id == OrderItem.order_id)
            .where(*order_filter)
        )

        revenue = money(revenue or ZERO)
        return {
            "total_orders": total_orders,
            "total_revenue": revenue,
            "average_order_value": money(revenue / total_orders) if total_orders else ZERO,
            "total_items_sold": int(items.scalar_one()),
            "first_order": first_order,
            "last_order": last_order,
        }

    async def top_selling_products(self, limit: int = 10) -> list[dict]:
        quantity_sold = func.sum(OrderItem.quantity).label("total_quantity_sold")
        revenue = func.sum(OrderItem.total_price).label("total_revenue")
        result = await self.db.execute(
            select(
                Product.id,
                Product.name,
                func.count(distinct(OrderItem.order_id)).label("order_count"),
                quantity_sold,
                revenue,
                func.avg(OrderItem.unit_price).label("average_price"),
            )
            .join(OrderItem, OrderItem.product_id == Product.id)
            .group_by(Product.id, Product.name)
            .order_by(quantity_sold.desc(), revenue.desc())
            .limit(limit)
        )
        return [
            {
                "product_id": row.id,
                "product_name": row.name,
                "order_count": row.order_count,
                "total_quantity_sold": int(row.total_quantity_sold),
                "total_revenue": money(row.total_revenue),
                "average_price": money(row.average_price),
            }
            for row in result
        ]

    async def customer_summary(self, phone: str) -> Optional[dict]:
        result = await self.db.execute(
            select(
                Order.customer_name,
                Order.customer_phone,
                func.count(Order.id).label("total_orders"),
                func.sum(Order.total_amount).label("total_spent"),
                func.min(Order.created_at).label("first_order_date"),
                func.max(Order.created_at).label("last_order_date"),
            )
            .where(Order.customer_phone.like(f"%{phone}%"))
            .group_by(Order.customer_name, Order.customer_phone)
            .order_by(func.count(Order.id).desc())
        )
        row = result.first()
        if row is None:
            return None
        total_spent = money(row.total_spent or ZERO)
        return {
            "customer_name": row.customer_name,
            "customer_phone": row.customer_phone,
            "total_orders": row.total_orders,
            "total_spent": total_spent,
            "average_order_value": money(total_spent / row.total_orders),
            "first_order_date": row.first_order_date,
            "last_order_date": row.last_order_date,
        }
