"""
Prometheus metrics module for the MixLab booking backend.

Service timings are fed by the @measure_operation decorator; booking and
webhook outcomes are recorded by the services that own them.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so repeated app construction in tests doesn't collide
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "mixlab_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "mixlab_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "mixlab_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_outcomes_total = Counter(
    "mixlab_booking_outcomes_total",
    "Booking creation attempts by outcome",
    ["outcome", "payment_method"],
    registry=REGISTRY,
)

payment_webhook_events_total = Counter(
    "mixlab_payment_webhook_events_total",
    "Payment provider webhook events by invoice status and handling result",
    ["status", "result"],
    registry=REGISTRY,
)

date_lock_acquisitions_total = Counter(
    "mixlab_date_lock_acquisitions_total",
    "Date lock acquisitions by backend",
    ["backend"],
    registry=REGISTRY,
)

late_payment_slot_conflicts_total = Counter(
    "mixlab_late_payment_slot_conflicts_total",
    "Payments received for bookings whose slot was taken in the meantime",
    ["previous_status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_booking_outcome(outcome: str, payment_method: str) -> None:
        booking_outcomes_total.labels(outcome=outcome, payment_method=payment_method).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_webhook_event(status: str, result: str) -> None:
        payment_webhook_events_total.labels(status=status or "unknown", result=result).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_date_lock(backend: str) -> None:
        date_lock_acquisitions_total.labels(backend=backend).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_late_payment_conflict(previous_status: str) -> None:
        late_payment_slot_conflicts_total.labels(previous_status=previous_status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()
