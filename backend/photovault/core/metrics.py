"""Prometheus metrics for the webhook pipeline"""
from prometheus_client import Counter, Histogram, REGISTRY

# Registration is guarded so test reloads don't trip duplicate-collector errors

try:
    webhook_events_counter = Counter(
        'photovault_webhook_events_total',
        'Total number of Stripe webhook events by outcome',
        ['event_type', 'status']
    )
except ValueError:
    webhook_events_counter = REGISTRY._names_to_collectors.get('photovault_webhook_events_total')

try:
    webhook_processing_histogram = Histogram(
        'photovault_webhook_processing_seconds',
        'Time spent processing Stripe webhook events',
        ['event_type']
    )
except ValueError:
    webhook_processing_histogram = REGISTRY._names_to_collectors.get('photovault_webhook_processing_seconds')

try:
    access_suspensions_counter = Counter(
        'photovault_access_suspensions_total',
        'Total number of subscriptions suspended after the grace period'
    )
except ValueError:
    access_suspensions_counter = REGISTRY._names_to_collectors.get('photovault_access_suspensions_total')

try:
    notification_failures_counter = Counter(
        'photovault_notification_failures_total',
        'Total number of swallowed email/analytics failures',
        ['kind']
    )
except ValueError:
    notification_failures_counter = REGISTRY._names_to_collectors.get('photovault_notification_failures_total')


def record_webhook_outcome(event_type: str, status: str, elapsed_seconds: float = None):
    """Count a webhook outcome and, when timed, observe its duration"""
    webhook_events_counter.labels(event_type=event_type or "unknown", status=status).inc()
    if elapsed_seconds is not None:
        webhook_processing_histogram.labels(event_type=event_type or "unknown").observe(elapsed_seconds)
