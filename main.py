from typing import Optional

import structlog
from fastapi import FastAPI

from shared.config.database import Database
from shared.config.settings import Settings, get_settings
from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from shared.security import limiter

from services.auth_service.router import router as auth_router
from services.auth_service.service import AuthService
from services.order_service.router import public_router as order_public_router
from services.order_service.router import router as order_router
from services.order_service.service import OrderPlacementEngine
from services.product_service.router import public_router as product_public_router
from services.product_service.router import router as product_router
from services.session_service.router import public_router as cart_router

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    database = database or Database(settings.database_url, echo=settings.database_echo)

    app = FastAPI(title="Shopfront", version="1.0.0", debug=settings.debug)
    app.state.settings = settings
    app.state.database = database
    app.state.engine = OrderPlacementEngine(database)
    app.state.limiter = limiter

    setup_observability(app, settings)
    register_exception_handlers(app, debug=settings.debug)

    # Admin product routes first: /products/low_stock must not be read as /products/{product_id}
    app.include_router(product_router)
    app.include_router(product_public_router)
    app.include_router(order_public_router)
    app.include_router(order_router)
    app.include_router(cart_router)
    app.include_router(auth_router)

    @app.get("/health", include_in_schema=False)
    async def health_check():
        return {"service": settings.service_name, "status": "running"}

    @app.on_event("startup")
    async def startup_event():
        await database.create_all()
        async with database.session() as db:
            await AuthService.bootstrap_admin(db, settings.admin_email, settings.admin_password)
        logger.info("startup_complete", service=settings.service_name)

    @app.on_event("shutdown")
    async def shutdown_event():
        await database.dispose()

    return app


app = create_app()
