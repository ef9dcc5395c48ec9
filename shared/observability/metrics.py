from prometheus_client import Counter, Histogram, Gauge

# Business Metrics
shop_orders_placed_total = Counter(
    "shop_orders_placed_total",
    "Order placement attempts by outcome",
    ["status"]  # Labels: 'success', 'validation_error', 'stock_unavailable', 'stock_conflict', 'error'
)

shop_order_placement_duration_seconds = Histogram(
    "shop_order_placement_duration_seconds",
    "Order placement duration in seconds"
)

shop_order_code_collisions_total = Counter(
    "shop_order_code_collisions_total",
    "Order code candidates rejected because they were already taken",
    ["stage"]  # Labels: 'allocate' (pre-insert check), 'insert' (unique constraint)
)

shop_order_code_fallbacks_total = Counter(
    "shop_order_code_fallbacks_total",
    "Order codes issued with the timestamp fallback suffix"
)

shop_stock_units_restored_total = Counter(
    "shop_stock_units_restored_total",
    "Stock units returned to inventory",
    ["reason"]  # Labels: 'order_deleted', 'order_cancelled', 'item_removed', 'item_reduced'
)

shop_active_carts = Gauge(
    "shop_active_carts",
    "Number of currently active carts"
)
