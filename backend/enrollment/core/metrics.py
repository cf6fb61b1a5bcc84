"""
Metrics instrumentation for observability.
Prometheus-compatible collectors for the admission engine.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Admission control metrics
admission_requests = Counter(
    'admission_requests_total',
    'Total apply-to-class requests',
    ['result']  # admitted, class_not_found, class_already_started, already_applied, capacity_exceeded, busy
)

admission_latency = Histogram(
    'admission_latency_seconds',
    'Apply-to-class latency including lock wait and retries',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

cancellations = Counter(
    'cancellations_total',
    'Total application cancellations',
    ['result']  # cancelled, application_not_found, ...
)

# Database metrics
db_operations = Counter(
    'db_operations_total',
    'Total database operations',
    ['operation']  # read, write, retry
)

db_retries = Counter(
    'db_retry_attempts_total',
    'Retry attempts due to lock timeouts or serialization conflicts'
)

# Notification metrics
notifications = Counter(
    'notifications_total',
    'Admission notifications dispatched',
    ['result']  # sent, failed
)


def metrics_payload() -> tuple[bytes, str]:
    """
    Prometheus exposition payload and its content type.

    Usage from an HTTP collaborator:
        body, content_type = metrics_payload()
    """
    return generate_latest(), CONTENT_TYPE_LATEST


# Convenience functions for instrumentation
def record_admission(result: str):
    """Record an admission decision ("admitted" or an error code)."""
    admission_requests.labels(result=result).inc()


def record_cancellation(result: str):
    cancellations.labels(result=result).inc()


def record_db_operation(operation: str):
    """Record database operation. Operation: read, write, retry"""
    db_operations.labels(operation=operation).inc()


def record_notification(sent: bool):
    result = "sent" if sent else "failed"
    notifications.labels(result=result).inc()
