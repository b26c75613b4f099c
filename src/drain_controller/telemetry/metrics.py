"""Prometheus metrics exposed on /metrics."""

from prometheus_client import Counter, Gauge, Histogram

TICKS = Counter(
    "drain_controller_ticks_total",
    "Reconciliation passes over all nodes",
)
TICK_DURATION = Histogram(
    "drain_controller_tick_duration_seconds",
    "Duration of a reconciliation pass over all nodes",
)
NODE_FAILURES = Counter(
    "drain_controller_node_failures_total",
    "Node reconciliations aborted by an error",
    ["node"],
)
SCALE_REQUESTS = Counter(
    "drain_controller_scale_requests_total",
    "Scale requests sent to controllers",
    ["direction"],
)
POD_DELETIONS = Counter(
    "drain_controller_pod_deletions_total",
    "Pods deleted after the grace period expired",
)
TRACKED_CONTROLLERS = Gauge(
    "drain_controller_tracked_controllers",
    "Controllers currently being drained off a node",
    ["node"],
)
