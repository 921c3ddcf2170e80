"""Node transformation: raw Kubernetes node objects to typed records.

The transformer is the only place that touches the semi-structured API
object. Every nested read goes through ``lookup`` which returns ``None``
for anything absent or of the wrong shape; only ``metadata.name`` is
required. Everything downstream sees either complete records or a
``NodeTransformError`` for one node.

Derivation rules:

Status
    Comma-joined ``type`` of every condition whose ``status`` is ``"True"``,
    in the order the API returned them. ``LastTransitionTimeReady`` comes
    from the ``Ready`` condition regardless of its status.
KubernetesProviderID
    ``"azurestack"`` when the platform marker file exists, otherwise the
    part of ``spec.providerID`` before the first ``:`` (or the raw value if
    that part is empty). Nodes without a providerID are ``"onprem"``.
DockerVersion
    ``docker://`` runtimes report the bare version; any other runtime is
    reported verbatim.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from nodeinventory.collector.errors import NodeTransformError
from nodeinventory.collector.quantity import cpu_nanocores, memory_bytes, plain_count
from nodeinventory.models.records import (
    InsightsMetricRecord,
    InventoryRecord,
    MetricRecord,
    RawNode,
    RuntimeInventoryRecord,
)

PROVIDER_AZURE_STACK = "azurestack"
PROVIDER_ON_PREM = "onprem"

NVIDIA_GPU = "nvidia.com/gpu"
AMD_GPU = "amd.com/gpu"

_DOCKER_PREFIX = "docker://"

_R = TypeVar("_R", MetricRecord, InsightsMetricRecord)


@dataclass(frozen=True)
class _MetricSpec:
    """Which status section and resource feed a metric, and how to scale it."""

    section: str
    resource: str
    metric_name: str
    convert: Callable[[Any], float]


# Order matters: records are produced metric by metric across all nodes.
NODE_METRIC_SPECS: tuple[_MetricSpec, ...] = (
    _MetricSpec("allocatable", "cpu", "cpuAllocatableNanoCores", cpu_nanocores),
    _MetricSpec("allocatable", "memory", "memoryAllocatableBytes", memory_bytes),
    _MetricSpec("capacity", "cpu", "cpuCapacityNanoCores", cpu_nanocores),
    _MetricSpec("capacity", "memory", "memoryCapacityBytes", memory_bytes),
)

GPU_METRIC_SPECS: tuple[_MetricSpec, ...] = (
    _MetricSpec("allocatable", NVIDIA_GPU, "nodeGpuAllocatable", plain_count),
    _MetricSpec("capacity", NVIDIA_GPU, "nodeGpuCapacity", plain_count),
    _MetricSpec("allocatable", AMD_GPU, "nodeGpuAllocatable", plain_count),
    _MetricSpec("capacity", AMD_GPU, "nodeGpuCapacity", plain_count),
)

_NODE_METRIC_RANK = {spec.metric_name: rank for rank, spec in enumerate(NODE_METRIC_SPECS)}
_GPU_METRIC_RANK = {(spec.resource, spec.metric_name): rank for rank, spec in enumerate(GPU_METRIC_SPECS)}


def lookup(obj: Any, *path: str) -> Any | None:
    """Walk nested mappings along *path*; ``None`` if any step is missing."""
    current = obj
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def lookup_str(obj: Any, *path: str) -> str | None:
    value = lookup(obj, *path)
    if value is None:
        return None
    return str(value)


def is_present(value: Any) -> bool:
    return value is not None and value != ""


def node_name(raw: RawNode) -> str:
    """Return ``metadata.name`` or raise NodeTransformError."""
    name = lookup(raw, "metadata", "name")
    if not isinstance(name, str) or not name:
        raise NodeTransformError("metadata.name is missing")
    return name


def derive_status(conditions: Any) -> tuple[str, str | None]:
    """Return ``(status, last_transition_time_ready)`` for a conditions list."""
    if not isinstance(conditions, list):
        return "", None
    true_types: list[str] = []
    ready_transition: str | None = None
    for condition in conditions:
        if not isinstance(condition, dict):
            continue
        cond_type = condition.get("type")
        if condition.get("status") == "True" and cond_type:
            true_types.append(str(cond_type))
        # Captured whether Ready is True or False
        if cond_type == "Ready" and condition.get("lastTransitionTime") is not None:
            ready_transition = str(condition["lastTransitionTime"])
    return ",".join(true_types), ready_transition


def derive_provider_id(provider_id: str | None, on_azure_stack: bool) -> str:
    if not provider_id:
        return PROVIDER_ON_PREM
    if on_azure_stack:
        return PROVIDER_AZURE_STACK
    provider = provider_id.split(":")[0]
    return provider or provider_id


def derive_runtime_version(runtime: str | None) -> str | None:
    if runtime is None:
        return None
    if runtime.lower().startswith(_DOCKER_PREFIX):
        parts = runtime.split("//")
        return parts[1] if len(parts) > 1 else ""
    return runtime


def _derive_value(
    spec: _MetricSpec,
    raw: RawNode,
) -> tuple[str, float] | None:
    value = lookup(raw, "status", spec.section, spec.resource)
    if not is_present(value):
        return None
    return node_name(raw), spec.convert(value)


def _metric_major(per_node: list[list[_R]], rank: Callable[[_R], int]) -> list[_R]:
    """Flatten per-node records into metric order, keeping node order within a metric."""
    return sorted((record for records in per_node for record in records), key=rank)


class NodeTransformer:
    """Derives inventory, runtime and metric records from raw nodes.

    Args:
        cluster_id:         Cluster identifier stamped on records.
        cluster_name:       Cluster display name stamped on records.
        platform_marker:    Path whose existence marks an Azure Stack host.
    """

    def __init__(self, cluster_id: str, cluster_name: str, platform_marker: str | Path) -> None:
        self.cluster_id = cluster_id
        self.cluster_name = cluster_name
        self._platform_marker = Path(platform_marker)

    def on_azure_stack(self) -> bool:
        return self._platform_marker.is_file()

    # ------------------------------------------------------------------
    # Per-node records
    # ------------------------------------------------------------------

    def to_inventory(self, raw: RawNode, collection_time: str) -> InventoryRecord:
        try:
            name = node_name(raw)
            labels = lookup(raw, "metadata", "labels")
            status, ready_transition = derive_status(lookup(raw, "status", "conditions"))
            provider_id = lookup_str(raw, "spec", "providerID")
            return InventoryRecord(
                collection_time=collection_time,
                computer=name,
                cluster_name=self.cluster_name,
                cluster_id=self.cluster_id,
                creation_timestamp=lookup_str(raw, "metadata", "creationTimestamp"),
                labels=dict(labels) if isinstance(labels, dict) else {},
                status=status,
                last_transition_time_ready=ready_transition,
                kubernetes_provider_id=derive_provider_id(
                    provider_id, on_azure_stack=bool(provider_id) and self.on_azure_stack()
                ),
                kubelet_version=lookup_str(raw, "status", "nodeInfo", "kubeletVersion"),
                kube_proxy_version=lookup_str(raw, "status", "nodeInfo", "kubeProxyVersion"),
            )
        except NodeTransformError:
            raise
        except (AttributeError, TypeError, ValueError) as exc:
            raise NodeTransformError(str(exc), lookup_str(raw, "metadata", "name")) from exc

    def to_runtime(self, raw: RawNode, collection_time: str) -> RuntimeInventoryRecord:
        name = node_name(raw)
        return RuntimeInventoryRecord(
            collection_time=collection_time,
            computer=name,
            operating_system=lookup_str(raw, "status", "nodeInfo", "osImage"),
            docker_version=derive_runtime_version(
                lookup_str(raw, "status", "nodeInfo", "containerRuntimeVersion")
            ),
        )

    def to_metrics(self, raw: RawNode, collection_time: str) -> list[MetricRecord]:
        """Capacity and allocatable cpu/memory records for one node.

        Raises:
            QuantityError: if a present value does not parse.
        """
        records: list[MetricRecord] = []
        for spec in NODE_METRIC_SPECS:
            derived = _derive_value(spec, raw)
            if derived is not None:
                records.append(self._metric(spec, derived, collection_time))
        return records

    def to_insights_metrics(self, raw: RawNode, collection_time: str) -> list[InsightsMetricRecord]:
        """Capacity and allocatable GPU records for one node."""
        records: list[InsightsMetricRecord] = []
        for spec in GPU_METRIC_SPECS:
            derived = _derive_value(spec, raw)
            if derived is not None:
                records.append(self._insights_metric(spec, derived, collection_time))
        return records

    # ------------------------------------------------------------------
    # Page-level metric derivation
    # ------------------------------------------------------------------

    def page_metrics(self, nodes: Sequence[RawNode], collection_time: str) -> list[MetricRecord]:
        """Metric records for a whole page, grouped metric by metric.

        Raises:
            QuantityError: if any node on the page carries an unparseable value.
        """
        per_node = [self.to_metrics(raw, collection_time) for raw in nodes]
        return _metric_major(per_node, lambda record: _NODE_METRIC_RANK[record.metric_name])

    def page_insights_metrics(
        self,
        nodes: Sequence[RawNode],
        collection_time: str,
    ) -> list[InsightsMetricRecord]:
        per_node = [self.to_insights_metrics(raw, collection_time) for raw in nodes]
        return _metric_major(per_node, lambda record: _GPU_METRIC_RANK[(record.vendor, record.metric_name)])

    def _metric(self, spec: _MetricSpec, derived: tuple[str, float], collection_time: str) -> MetricRecord:
        name, value = derived
        return MetricRecord(
            metric_name=spec.metric_name,
            computer=name,
            value=value,
            timestamp=collection_time,
            cluster_id=self.cluster_id,
        )

    def _insights_metric(
        self,
        spec: _MetricSpec,
        derived: tuple[str, float],
        collection_time: str,
    ) -> InsightsMetricRecord:
        name, value = derived
        return InsightsMetricRecord(
            metric_name=spec.metric_name,
            computer=name,
            value=value,
            collection_time=collection_time,
            vendor=spec.resource,
            cluster_id=self.cluster_id,
            cluster_name=self.cluster_name,
        )
