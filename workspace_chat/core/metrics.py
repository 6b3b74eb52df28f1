"""
Prometheus metrics for messaging operations.

Complements the HTTP metrics exposed by prometheus-fastapi-instrumentator.
Labels are kept low-cardinality: conversation kind ("group" / "direct"),
operation and outcome. No per-user or per-group labels.
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# WebSocket Metrics
# ============================================================================

websocket_connections_active = Gauge(
    'chat_websocket_connections_active',
    'Number of active per-user WebSocket connections'
)

websocket_connections_total = Counter(
    'chat_websocket_connections_total',
    'Total number of WebSocket connections established'
)

websocket_disconnections_total = Counter(
    'chat_websocket_disconnections_total',
    'Total number of WebSocket disconnections',
    ['reason']
)

# ============================================================================
# Message Operation Metrics
# ============================================================================

messages_created_total = Counter(
    'chat_messages_created_total',
    'Total number of messages persisted',
    ['kind', 'message_type']
)

messages_deleted_total = Counter(
    'chat_messages_deleted_total',
    'Total number of messages hard-deleted',
    ['kind']
)

message_operation_duration_seconds = Histogram(
    'chat_message_operation_duration_seconds',
    'Duration of message operations in seconds',
    ['operation', 'kind'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

message_operation_errors_total = Counter(
    'chat_message_operation_errors_total',
    'Total number of message operation errors',
    ['operation', 'error_type']
)

# ============================================================================
# Read-State Metrics
# ============================================================================

unread_updates_total = Counter(
    'chat_unread_updates_total',
    'Per-member unread counter updates',
    ['status']
)

# ============================================================================
# Fan-out Metrics
# ============================================================================

fanout_events_total = Counter(
    'chat_fanout_events_total',
    'Live events emitted on per-user channels',
    ['event', 'outcome']  # outcome: delivered, offline, failed
)

notifications_total = Counter(
    'chat_notifications_total',
    'Notifier invocations',
    ['outcome']  # outcome: sent, failed
)

# ============================================================================
# Group Lifecycle Metrics
# ============================================================================

group_operations_total = Counter(
    'chat_group_operations_total',
    'Group lifecycle operations',
    ['operation']  # create, update, delete, leave
)
