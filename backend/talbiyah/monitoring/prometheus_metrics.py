"""
Prometheus metrics for the Talbiyah lesson service.

Service timings come from ``@BaseService.measure_operation``; the domain
counters below track confirmation transitions, credit refunds and the
notification outbox.
"""

from threading import Lock
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry so tests and multiple app instances never collide on the default one
REGISTRY = CollectorRegistry()

http_request_duration_seconds = Histogram(
    "talbiyah_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_total = Counter(
    "talbiyah_http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

http_requests_in_progress = Gauge(
    "talbiyah_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method", "endpoint"],
    registry=REGISTRY,
)

service_operation_duration_seconds = Histogram(
    "talbiyah_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "talbiyah_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "talbiyah_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

lesson_confirmation_transitions_total = Counter(
    "talbiyah_lesson_confirmation_transitions_total",
    "Lesson confirmation transitions by target state and outcome",
    ["target", "outcome"],  # outcome: applied | rejected
    registry=REGISTRY,
)

lesson_refunds_total = Counter(
    "talbiyah_lesson_refunds_total",
    "Credit refunds for declined lessons by outcome",
    ["outcome"],  # refunded | duplicate | retry_scheduled | failed
    registry=REGISTRY,
)

notifications_outbox_total = Counter(
    "talbiyah_notifications_outbox_total",
    "Total notification outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

notifications_outbox_attempt_total = Counter(
    "talbiyah_notifications_outbox_attempt_total",
    "Number of notification outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

notifications_dispatch_seconds = Histogram(
    "talbiyah_notifications_dispatch_seconds",
    "Notification provider dispatch duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


class PrometheusMetrics:
    """Records metrics and renders the exposition payload."""

    _lock: Lock = Lock()

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}
        http_request_duration_seconds.labels(**labels).observe(duration)
        http_requests_total.labels(**labels).inc()

    @staticmethod
    def track_http_request_start(method: str, endpoint: str) -> None:
        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()

    @staticmethod
    def track_http_request_end(method: str, endpoint: str) -> None:
        http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record one ``@measure_operation`` call.

        Args:
            service: Service class name (e.g. 'LessonConfirmationService')
            operation: Operation name (e.g. 'decline_lesson')
            duration: Duration in seconds
            status: 'success' or 'error'
            error_type: Exception class name when status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_confirmation_transition(target: str, applied: bool) -> None:
        lesson_confirmation_transitions_total.labels(
            target=target, outcome="applied" if applied else "rejected"
        ).inc()

    @staticmethod
    def record_auto_acknowledged(count: int) -> None:
        if count > 0:
            lesson_confirmation_transitions_total.labels(
                target="auto_acknowledged", outcome="applied"
            ).inc(count)

    @staticmethod
    def record_refund_outcome(outcome: str) -> None:
        lesson_refunds_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_notification_attempt(event_type: str) -> None:
        notifications_outbox_attempt_total.labels(event_type=event_type).inc()

    @staticmethod
    def record_notification_outcome(event_type: str, status: str) -> None:
        notifications_outbox_total.labels(status=status, event_type=event_type).inc()

    @staticmethod
    def observe_notification_dispatch(event_type: str, duration: float) -> None:
        notifications_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))

    @staticmethod
    def get_metrics() -> bytes:
        """Generate metrics in the Prometheus text exposition format."""
        with PrometheusMetrics._lock:
            return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
