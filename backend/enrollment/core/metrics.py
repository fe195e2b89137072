"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Hold metrics
hold_attempts = Counter(
    'hold_attempts_total',
    'Total slot hold attempts',
    ['status']  # success, conflict, error
)

hold_latency = Histogram(
    'hold_latency_seconds',
    'Hold transaction latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Reconciliation metrics
reconciliation_outcomes = Counter(
    'reconciliation_outcomes_total',
    'Payment notification outcomes',
    ['outcome']
)

reservations_confirmed = Counter(
    'reservations_confirmed_total',
    'Reservations transitioned pending -> confirmed'
)

webhook_processing_failures = Counter(
    'webhook_processing_failures_total',
    'Webhook deliveries acknowledged despite a processing error'
)

# Sweeper metrics
sweeper_runs = Counter(
    'sweeper_runs_total',
    'Expiry sweeper ticks',
    ['result']  # ok, error
)

holds_expired = Counter(
    'holds_expired_total',
    'Pending holds cancelled by the sweeper'
)

# Payment processor metrics
processor_requests = Counter(
    'payment_processor_requests_total',
    'Calls to the payment processor',
    ['operation', 'result']  # create_preference/get_payment, ok/error
)

processor_latency = Histogram(
    'payment_processor_latency_seconds',
    'Payment processor call latency',
    ['operation'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Cache metrics
payment_marker_operations = Counter(
    'payment_marker_operations_total',
    'Processed-payment marker lookups',
    ['result']  # hit, miss, error
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_hold_attempt(status: str):
    """Record hold attempt. Status: success, conflict, error"""
    hold_attempts.labels(status=status).inc()


def record_reconciliation(outcome: str, confirmed: int = 0):
    reconciliation_outcomes.labels(outcome=outcome).inc()
    if confirmed:
        reservations_confirmed.inc(confirmed)


def record_sweep(expired: int, ok: bool = True):
    sweeper_runs.labels(result="ok" if ok else "error").inc()
    if expired:
        holds_expired.inc(expired)


def record_processor_call(operation: str, ok: bool):
    processor_requests.labels(operation=operation, result="ok" if ok else "error").inc()


def record_payment_marker(result: str):
    payment_marker_operations.labels(result=result).inc()
