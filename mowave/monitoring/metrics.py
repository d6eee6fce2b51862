"""
Prometheus metrics for voucher and payment monitoring.

Tracks:
- Payment initiations by method
- Settlement outcomes and duration
- Simulated gateway calls
- Voucher redemptions
- SMS notifications
- Settlement queue depth
"""
from prometheus_client import Counter, Gauge, Histogram

# Payment metrics
payments_initiated_total = Counter(
    "mowave_payments_initiated_total",
    "Total number of payments initiated",
    ["payment_method"],
)

payments_rejected_total = Counter(
    "mowave_payments_rejected_total",
    "Total number of payment requests rejected before creation",
    ["error_code"],
)

payment_amount = Histogram(
    "mowave_payment_amount",
    "Payment amounts in currency units",
    buckets=(1000, 2500, 5000, 10000, 20000, 30000, 50000),
)

settlements_total = Counter(
    "mowave_settlements_total",
    "Total settlements by final payment status",
    ["payment_method", "status"],  # success, failed, skipped
)

settlement_duration_seconds = Histogram(
    "mowave_settlement_duration_seconds",
    "Settlement job duration in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 3.0, 4.0, 5.0, 7.5, 10.0),
)

settlement_queue_depth = Gauge(
    "mowave_settlement_queue_depth",
    "Number of settlement jobs waiting for a worker",
)

# Gateway metrics
gateway_requests_total = Counter(
    "mowave_gateway_requests_total",
    "Total simulated gateway requests",
    ["provider", "outcome"],  # outcome: success, declined
)

gateway_duration_seconds = Histogram(
    "mowave_gateway_duration_seconds",
    "Gateway call duration in seconds",
    ["provider"],
    buckets=(0.1, 0.5, 1.0, 2.5, 3.0, 4.0, 5.0, 7.5),
)

# Voucher metrics
voucher_redemptions_total = Counter(
    "mowave_voucher_redemptions_total",
    "Total voucher redemptions",
    ["source"],  # redeem, settlement, admin
)

# Notification metrics
notifications_total = Counter(
    "mowave_notifications_total",
    "Total SMS notifications",
    ["kind", "status"],  # status: sent, failed
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment_initiated(payment_method: str, amount: int) -> None:
        """Record a created payment."""
        payments_initiated_total.labels(payment_method=payment_method).inc()
        payment_amount.observe(amount)

    @staticmethod
    def record_payment_rejected(error_code: str) -> None:
        """Record a rejected payment request."""
        payments_rejected_total.labels(error_code=error_code).inc()

    @staticmethod
    def record_settlement(payment_method: str, status: str, duration_seconds: float) -> None:
        """Record a finished settlement job."""
        settlements_total.labels(payment_method=payment_method, status=status).inc()
        settlement_duration_seconds.observe(duration_seconds)

    @staticmethod
    def set_settlement_queue_depth(depth: int) -> None:
        """Set settlement queue depth."""
        settlement_queue_depth.set(depth)

    @staticmethod
    def record_gateway_call(provider: str, success: bool, duration_seconds: float) -> None:
        """Record a simulated gateway call."""
        outcome = "success" if success else "declined"
        gateway_requests_total.labels(provider=provider, outcome=outcome).inc()
        gateway_duration_seconds.labels(provider=provider).observe(duration_seconds)

    @staticmethod
    def record_redemption(source: str) -> None:
        """Record a voucher redemption."""
        voucher_redemptions_total.labels(source=source).inc()

    @staticmethod
    def record_notification(kind: str, status: str) -> None:
        """Record an SMS notification attempt."""
        notifications_total.labels(kind=kind, status=status).inc()


# Export singleton instance
metrics = MetricsCollector()
