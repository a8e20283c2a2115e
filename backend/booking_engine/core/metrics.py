"""
Prometheus metrics for the booking engine, exposed at /metrics.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

booking_attempts = Counter(
    'booking_attempts_total',
    'Booking creation attempts',
    ['status']  # success, capacity_exceeded, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking creation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

booking_transitions = Counter(
    'booking_transitions_total',
    'Applied booking state transitions',
    ['event', 'result']  # result: applied, illegal, conflict
)

capacity_seats = Counter(
    'capacity_seat_movements_total',
    'Seats reserved and released through the ledger',
    ['direction']  # reserve, release
)

payment_initiations = Counter(
    'payment_initiations_total',
    'Payment initiations by channel',
    ['method', 'result']  # result: issued, failed
)

payment_callbacks = Counter(
    'payment_callbacks_total',
    'Gateway callbacks by outcome',
    ['result']  # applied, duplicate, stale, rejected
)

gateway_latency = Histogram(
    'payment_gateway_latency_seconds',
    'Latency of payment intent requests to the provider',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

cache_operations = Counter(
    'cache_operations_total',
    'Availability cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    booking_attempts.labels(status=status).inc()


def record_transition(event: str, result: str):
    booking_transitions.labels(event=event, result=result).inc()


def record_payment_callback(result: str):
    payment_callbacks.labels(result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
