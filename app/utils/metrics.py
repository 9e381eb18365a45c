"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
stk_push_requests_total = Counter(
    "stk_push_requests_total",
    "Total STK push requests by outcome",
    ["outcome"],  # sent, invalid, rate_limited, rejected, unavailable
)

mpesa_callbacks_total = Counter(
    "mpesa_callbacks_total",
    "Total M-Pesa callbacks received",
    ["result"],  # completed, failed, ignored, unauthorized, malformed, error
)

order_transitions_total = Counter(
    "order_transitions_total",
    "Order payment_status transitions",
    ["to_status", "source"],  # source: stk_push, callback, admin
)

support_tickets_total = Counter(
    "support_tickets_total",
    "Support tickets created",
    ["channel"],
)

telegram_requests_total = Counter(
    "telegram_requests_total",
    "Total Telegram API requests",
    ["method", "status"],
)

mpesa_requests_total = Counter(
    "mpesa_requests_total",
    "Total M-Pesa (Daraja) API requests",
    ["endpoint", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
telegram_request_duration_seconds = Histogram(
    "telegram_request_duration_seconds",
    "Telegram API request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

mpesa_request_duration_seconds = Histogram(
    "mpesa_request_duration_seconds",
    "M-Pesa API request duration",
    ["endpoint"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
