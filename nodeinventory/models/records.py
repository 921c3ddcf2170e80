"""Record types produced from Kubernetes node objects.

Every record is immutable and carries the collection time of the cycle
that produced it. ``to_event()`` renders the wire shape expected by the
downstream ingestion pipeline.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar

RawNode = dict[str, Any]

INSIGHTS_METRICS_ORIGIN = "container.azm.ms"
INSIGHTS_METRICS_GPU_NAMESPACE = "container.azm.ms/gpu"
INSIGHTS_METRICS_TAG_CLUSTER_ID = "container.azm.ms/clusterId"
INSIGHTS_METRICS_TAG_CLUSTER_NAME = "container.azm.ms/clusterName"
INSIGHTS_METRICS_TAG_GPU_VENDOR = "gpuVendor"


def format_collection_time(moment: datetime) -> str:
    """Render *moment* as second-precision ISO 8601 UTC (``...Z``)."""
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class InventoryRecord:
    """Node inventory row: identity, labels, conditions and versions."""

    DATA_TYPE: ClassVar[str] = "KUBE_NODE_INVENTORY_BLOB"
    IP_NAME: ClassVar[str] = "ContainerInsights"

    collection_time: str
    computer: str
    cluster_name: str
    cluster_id: str
    creation_timestamp: str | None
    status: str
    kubernetes_provider_id: str
    kubelet_version: str | None
    kube_proxy_version: str | None
    labels: dict[str, str] = field(default_factory=dict)
    last_transition_time_ready: str | None = None

    def to_event(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "CollectionTime": self.collection_time,
            "Computer": self.computer,
            "ClusterName": self.cluster_name,
            "ClusterId": self.cluster_id,
            "CreationTimeStamp": self.creation_timestamp,
            "Labels": [dict(self.labels)],
            "Status": self.status,
            "KubernetesProviderID": self.kubernetes_provider_id,
            "KubeletVersion": self.kubelet_version,
            "KubeProxyVersion": self.kube_proxy_version,
        }
        if self.last_transition_time_ready is not None:
            item["LastTransitionTimeReady"] = self.last_transition_time_ready
        return {"DataType": self.DATA_TYPE, "IPName": self.IP_NAME, "DataItems": [item]}


@dataclass(frozen=True)
class RuntimeInventoryRecord:
    """Operating system and container runtime of a node."""

    DATA_TYPE: ClassVar[str] = "CONTAINER_NODE_INVENTORY_BLOB"
    IP_NAME: ClassVar[str] = "ContainerInsights"

    collection_time: str
    computer: str
    operating_system: str | None
    docker_version: str | None

    def to_event(self) -> dict[str, Any]:
        item = {
            "CollectionTime": self.collection_time,
            "Computer": self.computer,
            "OperatingSystem": self.operating_system,
            "DockerVersion": self.docker_version,
        }
        return {"DataType": self.DATA_TYPE, "IPName": self.IP_NAME, "DataItems": [item]}


@dataclass(frozen=True)
class MetricRecord:
    """One capacity or allocatable value (cpu nanocores, memory bytes)."""

    DATA_TYPE: ClassVar[str] = "LINUX_PERF_BLOB"
    IP_NAME: ClassVar[str] = "LogManagement"
    OBJECT_NAME: ClassVar[str] = "K8SNode"

    metric_name: str
    computer: str
    value: float
    timestamp: str
    cluster_id: str

    def to_event(self) -> dict[str, Any]:
        return {
            "DataType": self.DATA_TYPE,
            "IPName": self.IP_NAME,
            "Timestamp": self.timestamp,
            "Host": self.computer,
            "Computer": self.computer,
            "ObjectName": self.OBJECT_NAME,
            "InstanceName": f"{self.cluster_id}/{self.computer}",
            "json_Collections": json.dumps([{"CounterName": self.metric_name, "Value": self.value}]),
        }


@dataclass(frozen=True)
class InsightsMetricRecord:
    """One accelerator (GPU) capacity or allocatable count."""

    DATA_TYPE: ClassVar[str] = "INSIGHTS_METRICS_BLOB"
    IP_NAME: ClassVar[str] = "ContainerInsights"

    metric_name: str
    computer: str
    value: float
    collection_time: str
    vendor: str
    cluster_id: str
    cluster_name: str

    def to_event(self) -> dict[str, Any]:
        item = {
            "CollectionTime": self.collection_time,
            "Computer": self.computer,
            "Name": self.metric_name,
            "Value": self.value,
            "Origin": INSIGHTS_METRICS_ORIGIN,
            "Namespace": INSIGHTS_METRICS_GPU_NAMESPACE,
            "Tags": {
                INSIGHTS_METRICS_TAG_CLUSTER_ID: self.cluster_id,
                INSIGHTS_METRICS_TAG_CLUSTER_NAME: self.cluster_name,
                INSIGHTS_METRICS_TAG_GPU_VENDOR: self.vendor,
            },
        }
        return {"DataType": self.DATA_TYPE, "IPName": self.IP_NAME, "DataItems": [item]}


Record = InventoryRecord | RuntimeInventoryRecord | MetricRecord | InsightsMetricRecord


@dataclass
class RecordBatch:
    """An ordered, destination-tagged batch of records of one kind.

    ``emitted_at`` is the capture time of the cycle, shared by every batch
    the cycle produces.
    """

    tag: str
    emitted_at: datetime
    records: list[Record] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def add(self, record: Record) -> None:
        self.records.append(record)

    def extend(self, records: list[MetricRecord] | list[InsightsMetricRecord]) -> None:
        self.records.extend(records)

    def events(self) -> list[dict[str, Any]]:
        return [record.to_event() for record in self.records]
