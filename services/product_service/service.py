import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFoundError, StockUnavailableError, ValidationError

from .models import Product
from .repository import InventoryStore, ProductRepository
from .schemas import ProductCreate, ProductUpdate

logger = structlog.get_logger(__name__)


class ProductService:

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate) -> Product:
        product = Product(
            name=data.name.strip(),
            description=data.description.strip(),
            original_price=data.original_price,
            sale_price=data.sale_price,
            quantity=data.quantity,
            image=data.image,
        )
        product = await ProductRepository.create_product(db, product)
        logger.info("product_created", product_id=product.id, quantity=product.quantity)
        return product

    @staticmethod
    async def list_products(db: AsyncSession, limit: int | None = None, offset: int = 0,
                            query: str | None = None, in_stock: bool = False):
        if query:
            return await ProductRepository.search_products(db, query)
        if in_stock:
            return await ProductRepository.get_in_stock(db)
        return await ProductRepository.get_all_products(db, limit, offset)

    @staticmethod
    async def low_stock(db: AsyncSession, threshold: int):
        return await ProductRepository.get_low_stock(db, threshold)

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int) -> Product:
        product = await ProductRepository.get_product_by_id(db, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @staticmethod
    async def update_product(db: AsyncSession, product_id: int, data: ProductUpdate) -> Product:
        product = await ProductService.get_product(db, product_id)
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError.single("body", "No valid fields to update")

        for required in ("name", "description"):
            if required in fields and fields[required] is None:
                raise ValidationError.single(required, f"{required.capitalize()} cannot be empty")

        original = fields.get("original_price", product.original_price)
        sale = fields.get("sale_price", product.sale_price)
        if original is not None and sale is not None and sale > original:
            raise ValidationError.single("sale_price", "Sale price must not exceed the original price")

        for field, value in fields.items():
            setattr(product, field, value.strip() if isinstance(value, str) else value)
        return await ProductRepository.update_product(db, product)

    @staticmethod
    async def delete_product(db: AsyncSession, product_id: int) -> None:
        # Imported here: order models depend on product models, not the other way round
        from services.order_service.models import OrderItem

        product = await ProductService.get_product(db, product_id)
        referenced = await db.execute(
            select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)
        )
        if referenced.scalar_one() > 0:
            raise ValidationError.single("product_id", "Product is referenced by existing orders")
        await ProductRepository.delete_product(db, product)
        logger.info("product_deleted", product_id=product_id)

    @staticmethod
    async def adjust_stock(db: AsyncSession, product_id: int, delta: int) -> Product:
        product = await ProductService.get_product(db, product_id)
        if delta == 0:
            raise ValidationError.single("delta", "Stock adjustment must not be zero")

        inventory = InventoryStore(db)
        if delta > 0:
            await inventory.increment(product_id, delta)
        elif not await inventory.decrement(product_id, -delta):
            await db.rollback()
            status = (await inventory.check_availability({product_id: -delta}))[product_id]
            raise StockUnavailableError([status.as_detail()])

        await db.commit()
        await db.refresh(product)
        logger.info("stock_adjusted", product_id=product_id, delta=delta, quantity=product.quantity)
        return product
