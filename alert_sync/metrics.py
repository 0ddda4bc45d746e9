"""
Prometheus metrics for the alert sync service
"""

from prometheus_client import CollectorRegistry, Counter, Gauge

registry = CollectorRegistry()

triggers_applied_total = Counter(
    'alert_triggers_applied_total',
    'Stored alerts marked as triggered',
    ['source'],
    registry=registry,
)

trigger_events_dropped_total = Counter(
    'alert_trigger_events_dropped_total',
    'Trigger events dropped because they had no market or no numeric price',
    registry=registry,
)

lifecycle_operations_total = Counter(
    'alert_lifecycle_operations_total',
    'Alert lifecycle operations',
    ['operation', 'outcome'],
    registry=registry,
)

registration_requests_total = Counter(
    'alert_registration_requests_total',
    'Requests sent to the remote alerting backend',
    ['outcome'],
    registry=registry,
)

validation_rejections_total = Counter(
    'alert_validation_rejections_total',
    'Alert prices rejected by the validator',
    registry=registry,
)

initial_sync_completed = Gauge(
    'alert_initial_sync_completed',
    'Initial reconciliation finished (1) or pending (0)',
    registry=registry,
)
