"""Prometheus metrics for payment creation, settlement outcomes and side-effect health"""

from prometheus_client import Counter, Histogram

# Payment creation
payment_created_counter = Counter(
    "cardpay_payment_created_total",
    "Payments created in PENDING state",
    ["method"],  # bank | card | instant | gateway
)

idempotent_replay_counter = Counter(
    "cardpay_idempotent_replay_total",
    "Creation requests answered from an existing payment",
)

idempotency_lookup_failures_counter = Counter(
    "cardpay_idempotency_lookup_failures_total",
    "Idempotency key lookups that failed at the storage layer",
)

payment_rejected_counter = Counter(
    "cardpay_payment_rejected_total",
    "Creation requests rejected before a payment was stored",
    ["reason"],  # not_found | inactive | exceeds_balance | invalid_amount
)

# Settlement
settlement_counter = Counter(
    "cardpay_settlement_total",
    "Settlement attempts by outcome",
    ["outcome"],  # success | failed | noop | error
)

overpay_discarded_counter = Counter(
    "cardpay_overpay_discarded_cents_total",
    "Payment amount left over after every unpaid statement was cleared",
)

settlement_duration_histogram = Histogram(
    "cardpay_settlement_duration_seconds",
    "Time spent inside the settlement transaction",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

# Side effects
side_effect_failures_counter = Counter(
    "cardpay_side_effect_failures_total",
    "Notification or activity writes that failed after settlement",
    ["effect"],  # notification | activity
)

# Gateway API
gateway_fetch_failures_counter = Counter(
    "gateway_fetch_failures_total",
    "Failed payment gateway API calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(status: str, transitioned: bool, discarded_cents: int = 0) -> None:
    """Record settlement outcome and any discarded overpay"""
    outcome = status.lower() if transitioned else "noop"
    settlement_counter.labels(outcome=outcome).inc()

    if discarded_cents > 0:
        overpay_discarded_counter.inc(discarded_cents)
