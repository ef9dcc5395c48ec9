from decimal import Decimal
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, PlainSerializer

T = TypeVar("T")

# Money stays Decimal in Python and goes out as a JSON number
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T
    message: Optional[str] = None
    count: Optional[int] = None


def ok(data, message: str | None = None, count: int | None = None) -> dict:
    body = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    if count is not None:
        body["count"] = count
    return body
