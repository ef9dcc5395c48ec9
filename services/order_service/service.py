"""
Order placement engine.

Placing an order runs Validating -> CheckingStock -> Allocating -> Writing ->
Reserving -> Committed; any step can end in Aborted. Validation and the stock
pre-check only read. Writing and reserving share one transaction, so an order
is never recorded without its stock or the other way round. The conditional
decrement is the real stock check; the pre-check only exists to give the
caller a precise answer before anything is written.
"""
import re
import time
from collections import defaultdict
from datetime import date, datetime, time as dt_time, timedelta
from typing import Callable, Iterable, Optional, Sequence

import structlog
from opentelemetry import trace
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shared.config.database import Database
from shared.errors import (
    NotFoundError, StockConflictError, StockUnavailableError, StorageError, ValidationError,
)
from shared.observability import (
    shop_order_code_collisions_total,
    shop_order_placement_duration_seconds,
    shop_orders_placed_total,
    shop_stock_units_restored_total,
)
from services.product_service.repository import InventoryStore, ProductRepository

from .codes import OrderCodeAllocator
from .models import Order, OrderStatus
from .repository import OrderLedger
from .schemas import OrderHeader, OrderItemCreate, OrderItemUpdate, OrderUpdate

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

MAX_NAME_LENGTH = 50
MAX_PHONE_LENGTH = 15
MAX_CODE_LENGTH = 255
MAX_INSERT_ATTEMPTS = 10
VALID_STATUSES = [status.value for status in OrderStatus]
SALES_PERIODS = {
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}

_PHONE_DISALLOWED = re.compile(r"[^0-9+\-\s]")


def sanitize_phone(phone: Optional[str]) -> str:
    return _PHONE_DISALLOWED.sub("", phone or "").strip()


def aggregate_quantities(items: Iterable) -> dict[int, int]:
    """Total quantity per product; repeated lines for one product are summed."""
    totals: dict[int, int] = defaultdict(int)
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(totals)


def _error(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def normalize_header_fields(values: dict, partial: bool = False) -> tuple[dict, list[dict]]:
    """
    Clean customer/status/notes fields and collect every violation.

    With ``partial`` only the keys present in ``values`` are checked, which is
    what a header update needs.
    """
    clean: dict = {}
    errors: list[dict] = []

    if not partial or "customer_name" in values:
        name = (values.get("customer_name") or "").strip()
        if not name:
            errors.append(_error("customer_name", "Customer name is required"))
        elif len(name) > MAX_NAME_LENGTH:
            errors.append(_error("customer_name", f"Customer name must be {MAX_NAME_LENGTH} characters or less"))
        else:
            clean["customer_name"] = name

    if not partial or "customer_phone" in values:
        phone = sanitize_phone(values.get("customer_phone"))
        if not phone:
            errors.append(_error("customer_phone", "Customer phone is required"))
        elif len(phone) > MAX_PHONE_LENGTH:
            errors.append(_error("customer_phone", f"Customer phone must be {MAX_PHONE_LENGTH} characters or less"))
        else:
            clean["customer_phone"] = phone

    if not partial or "customer_address" in values:
        address = (values.get("customer_address") or "").strip()
        if not address:
            errors.append(_error("customer_address", "Customer address is required"))
        else:
            clean["customer_address"] = address

    if values.get("status") is not None or (partial and "status" in values):
        status = values.get("status")
        if status not in VALID_STATUSES:
            errors.append(_error("status", "Invalid status. Must be one of: " + ", ".join(VALID_STATUSES)))
        else:
            clean["status"] = status

    if "notes" in values:
        clean["notes"] = (values.get("notes") or "").strip() or None

    return clean, errors


def _item_errors(field: str, quantity, unit_price) -> list[dict]:
    errors = []
    if quantity is None or quantity <= 0:
        errors.append(_error(f"{field}.quantity", "Quantity must be a positive number"))
    if unit_price is None or not unit_price.is_finite() or unit_price <= 0:
        errors.append(_error(f"{field}.unit_price", "Unit price must be a positive number"))
    return errors


def _shortfall_details(statuses) -> list[dict]:
    details = []
    for status in statuses:
        detail = status.as_detail()
        if detail["reason"] is None:
            detail["reason"] = "stock changed during reservation"
        details.append(detail)
    return details


class OrderPlacementEngine:
    """
    Admits orders against live inventory and keeps stock in step with the
    ledger for every later change (cancel, item edits, deletion).

    The engine owns its transactions: each public operation opens its own
    session from the injected ``Database``.
    """

    def __init__(self, database: Database, allocator: Optional[OrderCodeAllocator] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.database = database
        self.allocator = allocator or OrderCodeAllocator()
        self._clock = clock or (lambda: datetime.now().astimezone())

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self.now().date()

    # --- Placement ----------------------------------------------------------

    async def place_order(self, header: OrderHeader, items: Sequence[OrderItemCreate]) -> int:
        started = time.perf_counter()
        items = list(items)
        with tracer.start_as_current_span("place_order") as span:
            span.set_attribute("order.item_count", len(items))
            try:
                order_id = await self._place(header, items)
            except ValidationError:
                shop_orders_placed_total.labels(status="validation_error").inc()
                raise
            except StockConflictError:
                shop_orders_placed_total.labels(status="stock_conflict").inc()
                raise
            except StockUnavailableError:
                shop_orders_placed_total.labels(status="stock_unavailable").inc()
                raise
            except Exception as exc:
                span.record_exception(exc)
                shop_orders_placed_total.labels(status="error").inc()
                raise

            span.set_attribute("order.id", order_id)
            shop_orders_placed_total.labels(status="success").inc()
            shop_order_placement_duration_seconds.observe(time.perf_counter() - started)
            return order_id

    async def _place(self, header: OrderHeader, items: list[OrderItemCreate]) -> int:
        try:
            async with self.database.session() as db:
                with tracer.start_as_current_span("validate"):
                    header = await self._validate_placement(db, header, items)

                requested = aggregate_quantities(items)
                with tracer.start_as_current_span("check_stock"):
                    availability = await InventoryStore(db).check_availability(requested)

                unavailable = [status for status in availability.values() if not status.available]
                if unavailable:
                    logger.info("order_rejected", reason="stock_unavailable",
                                products=[status.product_id for status in unavailable])
                    raise StockUnavailableError(_shortfall_details(unavailable))
        except SQLAlchemyError as exc:
            raise StorageError("Failed to check order") from exc

        return await self._write_with_code(header, items, requested)

    async def _validate_placement(self, db, header: OrderHeader,
                                  items: list[OrderItemCreate]) -> OrderHeader:
        clean, errors = normalize_header_fields(header.model_dump())

        if clean.get("status") == OrderStatus.CANCELLED.value:
            errors.append(_error("status", "A new order cannot start out cancelled"))

        code = None
        if header.order_code is not None:
            code = header.order_code.strip()
            if not code:
                errors.append(_error("order_code", "Order code cannot be empty"))
            elif len(code) > MAX_CODE_LENGTH:
                errors.append(_error("order_code", f"Order code must be {MAX_CODE_LENGTH} characters or less"))
            elif await OrderLedger(db).code_exists(code):
                errors.append(_error("order_code", "Order code already exists"))

        if not items:
            errors.append(_error("items", "Order must contain at least one item"))

        existing = await InventoryStore(db).existing_product_ids(
            item.product_id for item in items if item.product_id
        )
        for index, item in enumerate(items):
            field = f"items[{index}]"
            if not item.product_id:
                errors.append(_error(f"{field}.product_id", "Product ID is required"))
            elif item.product_id not in existing:
                errors.append(_error(f"{field}.product_id", "Product does not exist"))
            errors.extend(_item_errors(field, item.quantity, item.unit_price))

        if errors:
            logger.info("order_rejected", reason="validation", errors=errors)
            raise ValidationError(errors, message="Order validation failed")

        return OrderHeader(**clean, order_code=code)

    async def _write_with_code(self, header: OrderHeader, items: list[OrderItemCreate],
                               requested: dict[int, int]) -> int:
        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            code = header.order_code
            try:
                async with self.database.session() as db:
                    async with db.begin():
                        if code is None:
                            with tracer.start_as_current_span("allocate_code"):
                                code = await self.allocator.allocate(db, self.today())
                        order_id = await self._write_and_reserve(db, code, header, items, requested)
            except IntegrityError as exc:
                if header.order_code is not None and "order_code" in str(exc.orig):
                    raise ValidationError.single("order_code", "Order code already exists") from exc
                if header.order_code is not None or "order_code" not in str(exc.orig):
                    raise StorageError("Failed to record order") from exc
                shop_order_code_collisions_total.labels(stage="insert").inc()
                logger.warning("order_code_collision", order_code=code, attempt=attempt)
                continue
            except SQLAlchemyError as exc:
                raise StorageError("Failed to record order") from exc

            logger.info("order_placed", order_id=order_id, order_code=code,
                        products=len(requested), attempt=attempt)
            return order_id

        raise StorageError(f"Could not allocate a unique order code after {MAX_INSERT_ATTEMPTS} attempts")

    async def _write_and_reserve(self, db, code: str, header: OrderHeader,
                                 items: list[OrderItemCreate], requested: dict[int, int]) -> int:
        with tracer.start_as_current_span("write_order"):
            order_id = await OrderLedger(db).create_order(code, header, items)

        with tracer.start_as_current_span("reserve_stock"):
            inventory = InventoryStore(db)
            failed = await inventory.decrement_many(requested)
            if failed:
                current = await inventory.check_availability({pid: requested[pid] for pid in failed})
                logger.warning("order_reservation_conflict", order_code=code, products=failed)
                # Leaving the transaction block with this error undoes the header and items
                raise StockConflictError(_shortfall_details(current.values()))
        return order_id

    # --- Deletion & header updates ------------------------------------------

    async def delete_order(self, order_id: int) -> int:
        with tracer.start_as_current_span("delete_order"):
            try:
                async with self.database.session() as db:
                    async with db.begin():
                        ledger = OrderLedger(db)
                        order = await ledger.read_by_id(order_id)
                        if order is None:
                            return 0

                        # A cancelled order already gave its stock back
                        restore = {} if order.status == OrderStatus.CANCELLED else aggregate_quantities(order.items)
                        affected = await ledger.delete_order(order_id)
                        if affected and restore:
                            await InventoryStore(db).increment_many(restore)
            except SQLAlchemyError as exc:
                raise StorageError("Failed to delete order") from exc

        if restore:
            shop_stock_units_restored_total.labels(reason="order_deleted").inc(sum(restore.values()))
        logger.info("order_deleted", order_id=order_id, restored=restore)
        return affected

    async def update_order(self, order_id: int, changes: OrderUpdate) -> Order:
        clean, errors = normalize_header_fields(changes.model_dump(exclude_unset=True), partial=True)
        if errors:
            raise ValidationError(errors, message="Order validation failed")
        if not clean:
            raise ValidationError.single("body", "No valid fields to update")

        try:
            async with self.database.session() as db:
                async with db.begin():
                    ledger = OrderLedger(db)
                    order = await ledger.read_by_id(order_id)
                    if order is None:
                        raise NotFoundError(f"Order {order_id} not found")

                    await self._apply_status_change(db, order, clean.get("status"))
                    await ledger.update_header(order_id, OrderUpdate(**clean))
        except SQLAlchemyError as exc:
            raise StorageError("Failed to update order") from exc

        logger.info("order_updated", order_id=order_id, fields=sorted(clean))
        return await self.get_order(order_id)

    async def _apply_status_change(self, db, order: Order, new_status: Optional[str]) -> None:
        if new_status is None:
            return
        cancelling = new_status == OrderStatus.CANCELLED.value
        was_cancelled = order.status == OrderStatus.CANCELLED
        quantities = aggregate_quantities(order.items)
        inventory = InventoryStore(db)

        if cancelling and not was_cancelled:
            await inventory.increment_many(quantities)
            shop_stock_units_restored_total.labels(reason="order_cancelled").inc(sum(quantities.values()))
        elif was_cancelled and not cancelling:
            failed = await inventory.decrement_many(quantities)
            if failed:
                current = await inventory.check_availability({pid: quantities[pid] for pid in failed})
                raise StockUnavailableError(_shortfall_details(current.values()))

    # --- Item mutations -----------------------------------------------------

    async def _open_order(self, ledger: OrderLedger, order_id: int) -> Order:
        order = await ledger.read_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status == OrderStatus.CANCELLED:
            raise ValidationError.single("order_id", "Items of a cancelled order cannot be changed")
        return order

    async def _reserve_one(self, inventory: InventoryStore, product_id: int, quantity: int) -> None:
        if not await inventory.decrement(product_id, quantity):
            current = await inventory.check_availability({product_id: quantity})
            raise StockUnavailableError(_shortfall_details(current.values()))

    async def add_item(self, order_id: int, item: OrderItemCreate) -> Order:
        errors = _item_errors("item", item.quantity, item.unit_price)
        try:
            async with self.database.session() as db:
                async with db.begin():
                    inventory = InventoryStore(db)
                    if not await inventory.existing_product_ids([item.product_id]):
                        errors.insert(0, _error("item.product_id", "Product does not exist"))
                    if errors:
                        raise ValidationError(errors)

                    ledger = OrderLedger(db)
                    await self._open_order(ledger, order_id)
                    await self._reserve_one(inventory, item.product_id, item.quantity)
                    item_id = await ledger.add_item(order_id, item)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to add order item") from exc

        logger.info("order_item_added", order_id=order_id, item_id=item_id,
                    product_id=item.product_id, quantity=item.quantity)
        return await self.get_order(order_id)

    async def update_item(self, item_id: int, changes: OrderItemUpdate) -> Order:
        fields = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}
        if not fields:
            raise ValidationError.single("body", "No valid fields to update")
        errors = []
        if "quantity" in fields and fields["quantity"] <= 0:
            errors.append(_error("quantity", "Quantity must be a positive number"))
        if "unit_price" in fields and (not fields["unit_price"].is_finite() or fields["unit_price"] <= 0):
            errors.append(_error("unit_price", "Unit price must be a positive number"))
        if errors:
            raise ValidationError(errors)

        try:
            async with self.database.session() as db:
                async with db.begin():
                    ledger = OrderLedger(db)
                    item = await ledger.get_item(item_id)
                    if item is None:
                        raise NotFoundError(f"Order item {item_id} not found")
                    order_id = item.order_id
                    await self._open_order(ledger, order_id)

                    delta = fields.get("quantity", item.quantity) - item.quantity
                    inventory = InventoryStore(db)
                    if delta > 0:
                        await self._reserve_one(inventory, item.product_id, delta)
                    elif delta < 0:
                        await inventory.increment(item.product_id, -delta)
                        shop_stock_units_restored_total.labels(reason="item_reduced").inc(-delta)

                    await ledger.update_item(item_id, OrderItemUpdate(**fields))
        except SQLAlchemyError as exc:
            raise StorageError("Failed to update order item") from exc

        logger.info("order_item_updated", order_id=order_id, item_id=item_id, fields=sorted(fields))
        return await self.get_order(order_id)

    async def remove_item(self, item_id: int) -> int:
        try:
            async with self.database.session() as db:
                async with db.begin():
                    ledger = OrderLedger(db)
                    item = await ledger.get_item(item_id)
                    if item is None:
                        return 0
                    order = await ledger.read_by_id(item.order_id)
                    product_id, quantity = item.product_id, item.quantity

                    affected = await ledger.remove_item(item_id)
                    restored = affected > 0 and order.status != OrderStatus.CANCELLED
                    if restored:
                        await InventoryStore(db).increment(product_id, quantity)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to remove order item") from exc

        if restored:
            shop_stock_units_restored_total.labels(reason="item_removed").inc(quantity)
        logger.info("order_item_removed", item_id=item_id, product_id=product_id, restored=restored)
        return affected

    # --- Reads --------------------------------------------------------------

    async def get_order(self, order_id: int) -> Order:
        async with self.database.session() as db:
            order = await OrderLedger(db).read_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def get_order_by_code(self, order_code: str) -> Order:
        async with self.database.session() as db:
            order = await OrderLedger(db).read_by_code(order_code.strip())
        if order is None:
            raise NotFoundError("Order not found. Please check your order code and try again.")
        return order

    async def list_orders(self, limit: Optional[int] = None, offset: int = 0, search: Optional[str] = None,
                          phone: Optional[str] = None, status: Optional[str] = None,
                          start: Optional[date] = None, end: Optional[date] = None) -> list[Order]:
        async with self.database.session() as db:
            ledger = OrderLedger(db)
            if search:
                return await ledger.search(search)
            if phone:
                return await ledger.get_by_phone(sanitize_phone(phone))
            if status:
                if status not in VALID_STATUSES:
                    raise ValidationError.single(
                        "status", "Invalid status. Must be one of: " + ", ".join(VALID_STATUSES)
                    )
                return await ledger.get_by_status(OrderStatus(status))
            if start or end:
                return await ledger.get_by_date_range(start or date.min, end or self.today())
            return await ledger.read_all(limit, offset)

    def _period_start(self, period: str) -> Optional[datetime]:
        now = self.now()
        if period == "all":
            return None
        if period == "today":
            return datetime.combine(now.date(), dt_time.min, tzinfo=now.tzinfo)
        if period in SALES_PERIODS:
            return now - SALES_PERIODS[period]
        raise ValidationError.single(
            "period", "Invalid period. Must be one of: today, week, month, year, all"
        )

    async def sales_stats(self, period: str = "month") -> dict:
        since = self._period_start(period)
        async with self.database.session() as db:
            stats = await OrderLedger(db).sales_stats(since)
        return {"period": period, **stats}

    async def customer_summary(self, phone: str) -> dict:
        async with self.database.session() as db:
            summary = await OrderLedger(db).customer_summary(sanitize_phone(phone))
        if summary is None:
            raise NotFoundError("No orders found for this customer")
        return summary

    async def dashboard_stats(self, low_stock_threshold: int = 5, top_limit: int = 5) -> dict:
        sales = await self.sales_stats("month")
        async with self.database.session() as db:
            ledger = OrderLedger(db)
            return {
                "total_products": await ProductRepository.count_products(db),
                "total_orders": await ledger.count(),
                "low_stock_products": len(await ProductRepository.get_low_stock(db, low_stock_threshold)),
                "sales": sales,
                "top_products": await ledger.top_selling_products(top_limit),
            }
