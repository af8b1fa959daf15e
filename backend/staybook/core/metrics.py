"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking creation attempts',
    ['status']  # success, conflict, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking creation latency',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

booking_transitions = Counter(
    'booking_transitions_total',
    'Applied booking state transitions',
    ['kind', 'target']  # kind: status, payment
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Listing version conflicts that forced a booking write to retry'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/error
)

# Outbox metrics
side_effects = Counter(
    'side_effects_total',
    'Dispatched side effects',
    ['kind', 'result']  # email/image_delete, ok/failed
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, conflict, error"""
    booking_attempts.labels(status=status).inc()


def record_transition(kind: str, target: str):
    booking_transitions.labels(kind=kind, target=target).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


def record_side_effect(kind: str, ok: bool):
    side_effects.labels(kind=kind, result="ok" if ok else "failed").inc()
