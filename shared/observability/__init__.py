from .setup import setup_observability
from .metrics import (
    shop_orders_placed_total,
    shop_order_placement_duration_seconds,
    shop_order_code_collisions_total,
    shop_order_code_fallbacks_total,
    shop_stock_units_restored_total,
    shop_active_carts
)
