"""Pytest configuration: every test gets its own SQLite database file."""

import os

# Settings are read once and cached, so the environment must be in place before app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["METRICS_ENABLED"] = "false"
os.environ.pop("OTLP_ENDPOINT", None)
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from shared.config.database import Database  # noqa: E402
from shared.config.settings import Settings  # noqa: E402
from shared.security import create_access_token, limiter  # noqa: E402
from services.order_service.service import OrderPlacementEngine  # noqa: E402
from services.product_service.models import Product  # noqa: E402

from .helpers import NOW  # noqa: E402


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate limit counters live in process memory; start every test clean."""
    limiter.reset()
    yield


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def engine(database):
    return OrderPlacementEngine(database, clock=lambda: NOW)


@pytest.fixture
def make_product(database):
    async def _make(name="Canvas Tote", quantity=10, original_price="29.99", sale_price=None):
        async with database.session() as db:
            product = Product(
                name=name,
                description=f"{name} for everyday use",
                original_price=Decimal(original_price) if original_price is not None else None,
                sale_price=Decimal(sale_price) if sale_price is not None else None,
                quantity=quantity,
            )
            db.add(product)
            await db.commit()
            return product.id

    return _make


@pytest.fixture
def stock_of(database):
    async def _stock(product_id):
        async with database.session() as db:
            product = await db.get(Product, product_id)
            return product.quantity

    return _stock


@pytest_asyncio.fixture
async def app(database):
    from main import create_app

    settings = Settings(
        database_url=database.url,
        jwt_secret_key="test-secret-key",
        metrics_enabled=False,
    )
    return create_app(settings=settings, database=database)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def admin_headers():
    token = create_access_token({"sub": "1", "role": "admin"})
    return {"Authorization": f"Bearer {token}"}
