"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at the /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking requests by final outcome',
    ['status']  # success, invalid_input, event_not_found, insufficient_capacity, conflict, timeout, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking transaction latency, including retries',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

seats_booked = Counter(
    'seats_booked_total',
    'Seats debited by committed bookings'
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Booking attempts retried after a concurrent write on the same event'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/error
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record the final outcome of one booking request."""
    booking_attempts.labels(status=status).inc()


def record_seats_booked(quantity: int):
    seats_booked.inc(quantity)


def record_db_retry():
    db_retries.inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


def record_cache_error(operation: str):
    cache_operations.labels(operation=operation, result="error").inc()
