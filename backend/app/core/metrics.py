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
    ['status']  # success, rejected, error
)

booking_transitions = Counter(
    'booking_transitions_total',
    'Booking status transitions',
    ['from_status', 'to_status']
)

auto_rejected_bookings = Counter(
    'auto_rejected_bookings_total',
    'Pending bookings rejected after a confirmation filled the departure'
)

confirm_capacity_conflicts = Counter(
    'confirm_capacity_conflicts_total',
    'Confirmations refused because confirmed seats would exceed capacity'
)

# Pricing metrics
promotion_discounts = Counter(
    'promotion_discounts_total',
    'Discounts granted by the promotion engine',
    ['promotion_type']  # Automatic, Coupon, FlashSale
)

price_calculation_latency = Histogram(
    'price_calculation_latency_seconds',
    'Price calculation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Notification metrics
booking_events_published = Counter(
    'booking_events_published_total',
    'Booking events published to the notification channel',
    ['event', 'result']  # published, skipped, error
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, rejected, error"""
    booking_attempts.labels(status=status).inc()


def record_transition(from_status: str, to_status: str):
    booking_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_auto_rejections(count: int):
    if count:
        auto_rejected_bookings.inc(count)


def record_discount(promotion_type: str):
    promotion_discounts.labels(promotion_type=promotion_type).inc()


def record_event_published(event: str, result: str):
    booking_events_published.labels(event=event, result=result).inc()
