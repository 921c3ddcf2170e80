"""Prometheus metrics for the node inventory collector.

All collectors are registered on the default prometheus_client registry and
exposed by the REST API under ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

collection_cycles_total = Counter(
    "nodeinventory_collection_cycles_total",
    "Completed node collection cycles by outcome.",
    ["outcome"],
)

cycle_duration_seconds = Histogram(
    "nodeinventory_cycle_duration_seconds",
    "Wall-clock duration of one node collection cycle.",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

node_pages_fetched_total = Counter(
    "nodeinventory_node_pages_fetched_total",
    "Node list pages fetched from the Kubernetes API.",
)

node_transform_errors_total = Counter(
    "nodeinventory_node_transform_errors_total",
    "Nodes skipped because they could not be transformed.",
)

records_emitted_total = Counter(
    "nodeinventory_records_emitted_total",
    "Records handed to the downstream router, per destination tag.",
    ["tag"],
)

emit_errors_total = Counter(
    "nodeinventory_emit_errors_total",
    "Failed router emissions, per destination tag.",
    ["tag"],
)

metrics_derivation_errors_total = Counter(
    "nodeinventory_metrics_derivation_errors_total",
    "Pages whose metric derivation failed, per metric kind.",
    ["kind"],
)

telemetry_samples_total = Counter(
    "nodeinventory_telemetry_samples_total",
    "Operational telemetry samples sent to the telemetry sink.",
)
