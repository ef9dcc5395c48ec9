"""
Order code allocation.

Codes look like ``ORD-20240101-003``: a fixed prefix, the calendar day and a
zero-padded counter that restarts every day. The counter is derived from the
highest code already stored for the day, so it is sortable and readable but
not a lock: two requests can read the same maximum. The candidate is
re-checked before being returned, and the unique constraint on
``orders.order_code`` settles whatever slips through (the placement engine
retries on that violation).
"""
import time
from datetime import date
from typing import Callable

import structlog
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.observability import shop_order_code_collisions_total, shop_order_code_fallbacks_total

from .models import Order

logger = structlog.get_logger(__name__)

PREFIX = "ORD"
COUNTER_WIDTH = 3
MAX_ATTEMPTS = 10
# Sequential suffixes stay well below this; timestamp fallbacks are 10 digits.
MAX_COUNTER_DIGITS = 6


def day_prefix(day: date) -> str:
    return f"{PREFIX}-{day:%Y%m%d}-"


def format_code(day: date, counter: int) -> str:
    return f"{day_prefix(day)}{counter:0{COUNTER_WIDTH}d}"


class OrderCodeAllocator:

    def __init__(self, max_attempts: int = MAX_ATTEMPTS, timestamp: Callable[[], float] = time.time):
        self.max_attempts = max_attempts
        self._timestamp = timestamp

    async def max_counter(self, db: AsyncSession, day: date) -> int:
        prefix = day_prefix(day)
        result = await db.execute(
            select(Order.order_code).where(
                Order.order_code.like(f"{prefix}%"),
                func.length(Order.order_code) <= len(prefix) + MAX_COUNTER_DIGITS,
            )
        )
        # Caller-supplied codes may share the prefix without a numeric suffix
        counters = [
            int(suffix)
            for suffix in (code[len(prefix):] for code in result.scalars())
            if suffix.isdigit()
        ]
        return max(counters, default=0)

    async def code_exists(self, db: AsyncSession, code: str) -> bool:
        result = await db.execute(select(exists().where(Order.order_code == code)))
        return bool(result.scalar())

    def fallback_code(self, day: date) -> str:
        return f"{day_prefix(day)}{int(self._timestamp())}"

    async def allocate(self, db: AsyncSession, day: date) -> str:
        counter = await self.max_counter(db, day) + 1
        for _ in range(self.max_attempts):
            code = format_code(day, counter)
            if not await self.code_exists(db, code):
                return code
            shop_order_code_collisions_total.labels(stage="allocate").inc()
            counter += 1

        code = self.fallback_code(day)
        shop_order_code_fallbacks_total.inc()
        logger.warning("order_code_fallback", code=code, attempts=self.max_attempts)
        return code
