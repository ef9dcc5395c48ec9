from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Round to cents. Floats go through str() so 19.99 stays 19.99."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: int, unit_price) -> Decimal:
    return money(Decimal(quantity) * money(unit_price))


def order_total(line_totals: Iterable[Decimal]) -> Decimal:
    return money(sum(line_totals, ZERO))
