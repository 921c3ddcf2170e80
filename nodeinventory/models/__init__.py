"""Core data structures for the node inventory collector."""

from nodeinventory.models.config import NodeInventoryConfig
from nodeinventory.models.cycle import CycleOutcome, CycleStats
from nodeinventory.models.records import (
    InsightsMetricRecord,
    InventoryRecord,
    MetricRecord,
    RawNode,
    Record,
    RecordBatch,
    RuntimeInventoryRecord,
    format_collection_time,
)

__all__ = [
    "CycleOutcome",
    "CycleStats",
    "InsightsMetricRecord",
    "InventoryRecord",
    "MetricRecord",
    "NodeInventoryConfig",
    "RawNode",
    "Record",
    "RecordBatch",
    "RuntimeInventoryRecord",
    "format_collection_time",
]
