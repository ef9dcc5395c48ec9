"""
Error taxonomy shared by every service, plus the FastAPI handlers that turn
it into the JSON error envelope:

    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}

Domain code raises these exceptions; routers never build error responses by
hand.
"""
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

logger = structlog.get_logger(__name__)


class ShopError(Exception):
    code = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ShopError):
    """Caller-correctable input problems. Carries every violation found."""

    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, errors: list[dict[str, str]], message: str = "Validation failed"):
        super().__init__(message, details=errors)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}], message=message)


class StockUnavailableError(ShopError):
    """Requested quantities exceed what is on hand."""

    code = "stock_unavailable"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, shortfalls: list[dict[str, Any]], message: str | None = None):
        if message is None:
            names = ", ".join(
                f"{s.get('product_name') or 'Unknown product'} (ID: {s['product_id']}): {s['reason']}"
                for s in shortfalls
            )
            message = f"Stock unavailable: {names}"
        super().__init__(message, details=shortfalls)
        self.shortfalls = shortfalls


class StockConflictError(StockUnavailableError):
    """Stock passed the pre-check but was gone by reservation time."""

    code = "stock_conflict"


class NotFoundError(ShopError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class StorageError(ShopError):
    """The data store failed. The original exception is kept on ``__cause__``."""

    code = "storage_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(code: str, message: str, details: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        message, details = exc.message, exc.details
        if isinstance(exc, StorageError):
            logger.error(
                "storage_error",
                path=request.url.path,
                error=exc.message,
                cause=repr(exc.__cause__),
            )
            if not debug:
                message, details = "An internal error occurred", None
            elif exc.__cause__ is not None:
                details = {"cause": str(exc.__cause__)}
        else:
            logger.info("request_rejected", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(error_body(exc.code, message, details)),
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("http_error", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(ValidationError.code, "Validation failed", errors),
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=error_body("rate_limited", f"Rate limit exceeded: {exc.detail}"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path)
        message = str(exc) if debug else "An internal error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("internal_error", message),
        )
