"""Throttled operational telemetry sampling.

Every node passing through a cycle is offered to the sampler. Once at
least ``flush_interval_minutes`` whole minutes have elapsed since the last
sample, the node is described to the telemetry sink as two metrics
(``NodeMemory`` and ``NodeCoreCapacity``) carrying version, platform and
configuration properties. A metric is left out when the node reports no
such capacity.

The last-sample time is reset by the collector once per page, after the
page loop, and only if a sample fired on that page. Every node on that
page that crossed the threshold therefore produces a sample, so a page can
emit several samples in one window.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from nodeinventory.collector.quantity import memory_bytes, parse_quantity
from nodeinventory.collector.transform import AMD_GPU, NVIDIA_GPU, is_present, lookup
from nodeinventory.models.config import PlatformConfig, TelemetryConfig
from nodeinventory.models.records import InventoryRecord, RawNode, RuntimeInventoryRecord
from nodeinventory.observability.metrics import telemetry_samples_total
from nodeinventory.sinks.telemetry import TelemetrySink

_log = structlog.get_logger(component="collector.sampler")

NODE_MEMORY_METRIC = "NodeMemory"
NODE_CORE_CAPACITY_METRIC = "NodeCoreCapacity"


@dataclass
class SamplerState:
    """When the last telemetry sample was sent (unix seconds)."""

    last_sample_unix_time: float


class TelemetrySampler:
    """Decides when to describe a node to the telemetry sink.

    Args:
        sink:      Destination for sampled metrics. Never raises.
        telemetry: Threshold and configuration-snapshot values.
        platform:  Settings-file paths whose existence adds snapshot fields.
        clock:     Unix-time source, injectable for tests.
    """

    def __init__(
        self,
        sink: TelemetrySink,
        telemetry: TelemetryConfig,
        platform: PlatformConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sink = sink
        self._telemetry = telemetry
        self._platform = platform
        self._clock = clock
        self.state = SamplerState(last_sample_unix_time=clock())

    def reset(self) -> None:
        """Start a fresh threshold window from now."""
        self.state = SamplerState(last_sample_unix_time=self._clock())

    def elapsed_minutes(self) -> int:
        return int(abs(self._clock() - self.state.last_sample_unix_time) // 60)

    def is_due(self) -> bool:
        return self.elapsed_minutes() >= self._telemetry.flush_interval_minutes

    def mark_sampled(self) -> None:
        self.state.last_sample_unix_time = self._clock()

    async def maybe_sample(
        self,
        raw: RawNode,
        inventory: InventoryRecord,
        runtime: RuntimeInventoryRecord,
    ) -> bool:
        """Send a sample for this node if the threshold has been reached.

        Returns True when a sample was sent. A metric whose capacity value is
        absent is left out; a node with neither counts as not sampled.
        Failures building the sample are logged and reported, never raised.
        """
        if not self.is_due():
            return False
        try:
            base, full = self._build_properties(raw, inventory, runtime)
            memory = lookup(raw, "status", "capacity", "memory")
            cpu = lookup(raw, "status", "capacity", "cpu")
            samples: list[tuple[str, float, dict[str, Any]]] = []
            if is_present(memory):
                samples.append((NODE_MEMORY_METRIC, memory_bytes(memory), base))
            if is_present(cpu):
                samples.append((NODE_CORE_CAPACITY_METRIC, float(parse_quantity(cpu)), full))
            for name, value, properties in samples:
                await self._sink.emit_metric(name, value, properties)
        except Exception as exc:  # noqa: BLE001
            _log.warning("telemetry_sample_failed", node=inventory.computer, error=str(exc))
            await self._sink.emit_exception(exc)
            return False

        if not samples:
            _log.debug("telemetry_sample_skipped", node=inventory.computer, reason="no capacity")
            return False

        telemetry_samples_total.inc()
        _log.debug("telemetry_sample_sent", node=inventory.computer)
        return True

    def _build_properties(
        self,
        raw: RawNode,
        inventory: InventoryRecord,
        runtime: RuntimeInventoryRecord,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Return the NodeMemory properties and the NodeCoreCapacity superset."""
        node_info = lookup(raw, "status", "nodeInfo") or {}
        base: dict[str, Any] = {
            "Computer": inventory.computer,
            "KubeletVersion": inventory.kubelet_version,
            "OperatingSystem": node_info.get("operatingSystem"),
            "DockerVersion": runtime.docker_version,
            "KubernetesProviderID": inventory.kubernetes_provider_id,
            "KernelVersion": node_info.get("kernelVersion"),
            "OSImage": node_info.get("osImage"),
        }

        full = dict(base)
        nvidia = lookup(raw, "status", "capacity", NVIDIA_GPU)
        if is_present(nvidia):
            full["nvigpus"] = nvidia
        amd = lookup(raw, "status", "capacity", AMD_GPU)
        if is_present(amd):
            full["amdgpus"] = amd

        if Path(self._platform.log_settings_path).is_file():
            full["collectAllKubeEvents"] = self._telemetry.collect_all_kube_events

        if Path(self._platform.prom_settings_path).is_file():
            prom = self._telemetry.prom
            full.update(
                {
                    "rsPromInt": prom.interval,
                    "rsPromFPC": prom.fieldpass_count,
                    "rsPromFDC": prom.fielddrop_count,
                    "rsPromServ": prom.k8s_service_count,
                    "rsPromUrl": prom.url_count,
                    "rsPromMonPods": prom.monitor_pods,
                    "rsPromMonPodsNs": prom.monitor_pods_namespace_count,
                }
            )
        return base, full
