"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
pdf_operations_total = Counter(
    "pdf_operations_total",
    "Total PDF operations by outcome",
    ["operation_type", "status"],  # status: succeeded, failed, rejected
)

access_decisions_total = Counter(
    "access_decisions_total",
    "Access decisions by access path",
    ["access_type"],  # subscription, oneTime, free
)

credit_consumptions_total = Counter(
    "credit_consumptions_total",
    "One-time credit ledger writes by result",
    ["result"],  # consumed, already_consumed, failed
)

bookkeeping_failures_total = Counter(
    "bookkeeping_failures_total",
    "Swallowed failures of secondary bookkeeping",
    ["kind"],  # ledger, operation_log
)

conversion_requests_total = Counter(
    "conversion_requests_total",
    "Conversion service requests",
    ["kind", "status"],
)

stripe_webhook_events_total = Counter(
    "stripe_webhook_events_total",
    "Stripe webhook events received",
    ["event_type", "outcome"],  # outcome: processed, duplicate, ignored, error
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
pdf_operation_duration_seconds = Histogram(
    "pdf_operation_duration_seconds",
    "PDF transform duration",
    ["operation_type"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60],
)

conversion_request_duration_seconds = Histogram(
    "conversion_request_duration_seconds",
    "Conversion service request duration",
    ["kind"],
    buckets=[1, 5, 10, 30, 60, 120],
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
