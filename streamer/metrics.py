"""
Custom Prometheus metrics for CDC streaming and connector lifecycle
"""
from prometheus_client import Counter, Histogram, Gauge

# ====================================
# DATABASE / READINESS METRICS
# ====================================
database_connections_total = Counter(
    'cdc_database_connections_total',
    'Total number of source database connection attempts',
    ['status', 'database_type']  # status: success/failed
)

readiness_validations_total = Counter(
    'cdc_readiness_validations_total',
    'Total number of readiness validations',
    ['database_type', 'outcome', 'mode']  # outcome: ready/not_ready, mode: validate/fix
)

readiness_fixes_applied_total = Counter(
    'cdc_readiness_fixes_applied_total',
    'Corrective actions applied to source databases',
    ['database_type', 'check', 'status']
)

# ====================================
# DEBEZIUM CONNECTOR METRICS
# ====================================
debezium_connectors_total = Counter(
    'cdc_debezium_connectors_total',
    'Total number of Debezium connector operations',
    ['operation', 'status']  # operation: create/update/delete, status: success/failed
)

debezium_connector_registration_duration = Histogram(
    'cdc_debezium_connector_registration_duration_seconds',
    'Time taken to validate, prepare and register a connector',
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, float("inf"))
)

# ====================================
# STREAM RELAY METRICS
# ====================================
stream_sessions_active = Gauge(
    'cdc_stream_sessions_active',
    'Number of open relay sessions'
)

stream_events_relayed_total = Counter(
    'cdc_stream_events_relayed_total',
    'Events handed to relay readers',
    ['variant']  # data-change/schema-change/unrecognized
)

stream_duplicates_dropped_total = Counter(
    'cdc_stream_duplicates_dropped_total',
    'Redelivered (topic, offset) pairs dropped by the relay'
)

stream_unrecognized_dropped_total = Counter(
    'cdc_stream_unrecognized_dropped_total',
    'Unrecognized messages withheld from readers'
)

stream_failures_total = Counter(
    'cdc_stream_failures_total',
    'Relay sessions terminated by a broker failure',
    ['error_type']
)
