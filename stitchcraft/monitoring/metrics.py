"""
Prometheus metrics for the StitchCraft API.

Tracks:
- Payments recorded by method and outcome
- Payment amounts
- Paystack API calls and errors
- Webhook events
- Tracking portal lookups
- Login attempts
- HTTP request latency
"""
from prometheus_client import Counter, Histogram

# Payment metrics
payments_recorded_total = Counter(
    "stitchcraft_payments_recorded_total",
    "Total payment recording attempts",
    ["method", "outcome"],  # outcome: recorded, already_recorded
)

payment_amount_ghs = Histogram(
    "stitchcraft_payment_amount_ghs",
    "Recorded payment amounts in GHS",
    buckets=(10, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

# Paystack API metrics
paystack_api_requests_total = Counter(
    "stitchcraft_paystack_api_requests_total",
    "Total Paystack API requests",
    ["operation", "status"],
)

paystack_api_duration_seconds = Histogram(
    "stitchcraft_paystack_api_duration_seconds",
    "Paystack API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Webhook metrics
webhook_events_processed_total = Counter(
    "stitchcraft_webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "status"],  # processed, ignored, duplicate, rejected
)

webhook_processing_duration_seconds = Histogram(
    "stitchcraft_webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Tracking portal metrics
tracking_lookups_total = Counter(
    "stitchcraft_tracking_lookups_total",
    "Tracking token lookups",
    ["result"],  # valid, invalid
)

# Auth metrics
login_attempts_total = Counter(
    "stitchcraft_login_attempts_total",
    "Login attempts",
    ["outcome"],  # success, failed, rate_limited
)

# HTTP metrics
http_request_duration_seconds = Histogram(
    "stitchcraft_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "status_code"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment(method: str, outcome: str, amount: float) -> None:
        """Record a payment recording attempt."""
        payments_recorded_total.labels(method=method, outcome=outcome).inc()
        if outcome == "recorded":
            payment_amount_ghs.observe(amount)

    @staticmethod
    def record_paystack_api_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record Paystack API call."""
        paystack_api_requests_total.labels(operation=operation, status=status).inc()
        paystack_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_webhook_event(event_type: str, status: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_processed_total.labels(event_type=event_type, status=status).inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )

    @staticmethod
    def record_tracking_lookup(result: str) -> None:
        tracking_lookups_total.labels(result=result).inc()

    @staticmethod
    def record_login_attempt(outcome: str) -> None:
        login_attempts_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_request(method: str, status_code: int, duration_seconds: float) -> None:
        http_request_duration_seconds.labels(
            method=method, status_code=str(status_code)
        ).observe(duration_seconds)


# Export singleton instance
metrics = MetricsCollector()
