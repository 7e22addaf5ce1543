from prometheus_client import Counter, Gauge

LIVE_SESSIONS = Gauge(
    "order_hub_live_sessions",
    "Registered real-time sessions",
    ["role"],  # customer | kitchen
)

EVENTS_EMITTED = Counter(
    "order_hub_events_emitted_total",
    "Events delivered to sessions",
    ["event"],
)

EVENTS_DROPPED = Counter(
    "order_hub_events_dropped_total",
    "Events skipped because the target session was gone",
    ["event"],
)

ORDER_SUBMISSIONS = Counter(
    "order_hub_order_submissions_total",
    "Order submissions by outcome",
    ["outcome"],  # created | validation_error | not_found | stock_exhausted
)

STATUS_UPDATES = Counter(
    "order_hub_status_updates_total",
    "Order status/payment updates by outcome",
    ["outcome"],  # applied | not_found | invalid_transition | validation_error
)
