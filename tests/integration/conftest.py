"""Shared fixtures for node inventory integration tests.

Provides in-memory fakes for the page source, the record router and the
telemetry sink, plus a wired ``NodeInventoryCollector`` so tests can run
full collection cycles without a Kubernetes API server.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from nodeinventory.collector.emitter import BatchEmitter
from nodeinventory.collector.errors import EmitError
from nodeinventory.collector.node_collector import NodeInventoryCollector
from nodeinventory.collector.sampler import TelemetrySampler
from nodeinventory.collector.transform import NodeTransformer
from nodeinventory.kube.client import NodePage
from nodeinventory.models.config import PlatformConfig, TelemetryConfig
from nodeinventory.models.records import RecordBatch
from nodeinventory.sinks.router import RecordRouter
from nodeinventory.sinks.telemetry import TelemetrySink

CYCLE_TIME = datetime(2026, 2, 18, 12, 0, 0, tzinfo=UTC)
CYCLE_TIME_STR = "2026-02-18T12:00:00Z"
CLUSTER_ID = "/subscriptions/x/resourceGroups/rg/providers/Microsoft.ContainerService/managedClusters/prod"
CLUSTER_NAME = "prod"


# ---------------------------------------------------------------------------
# Node factory
# ---------------------------------------------------------------------------


def make_node(
    name: str = "aks-nodepool1-0",
    ready: bool = True,
    runtime: str = "containerd://1.6.4",
    capacity: dict[str, str] | None = None,
    allocatable: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Create a raw node object shaped like a NodeList item."""
    return {
        "metadata": {
            "name": name,
            "creationTimestamp": "2026-01-01T00:00:00Z",
            "labels": {"kubernetes.io/hostname": name, "agentpool": "nodepool1"},
        },
        "spec": {"providerID": f"azure:///subscriptions/x/virtualMachines/{name}"},
        "status": {
            "conditions": [
                {"type": "MemoryPressure", "status": "False"},
                {
                    "type": "Ready",
                    "status": "True" if ready else "False",
                    "lastTransitionTime": "2026-02-18T11:00:00Z",
                },
            ],
            "nodeInfo": {
                "kubeletVersion": "v1.27.3",
                "kubeProxyVersion": "v1.27.3",
                "containerRuntimeVersion": runtime,
                "osImage": "Ubuntu 22.04.3 LTS",
                "operatingSystem": "linux",
                "kernelVersion": "5.15.0-1049-azure",
            },
            "capacity": capacity if capacity is not None else {"cpu": "4", "memory": "16Gi"},
            "allocatable": allocatable if allocatable is not None else {"cpu": "3860m", "memory": "12Gi"},
        },
    }


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFetcher:
    """Serves a scripted sequence of pages; an Exception entry is raised instead."""

    def __init__(self, pages: list[NodePage | Exception]) -> None:
        self._pages = list(pages)
        self.locators: list[str] = []

    def script(self, pages: list[NodePage | Exception]) -> None:
        self._pages = list(pages)

    async def fetch_page(self, locator: str) -> NodePage:
        self.locators.append(locator)
        if not self._pages:
            raise AssertionError(f"unexpected fetch of {locator}")
        page = self._pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page


class RecordingRouter(RecordRouter):
    """Keeps a copy of every routed batch; tags in ``fail_tags`` are rejected."""

    def __init__(self) -> None:
        self.fail_tags: set[str] = set()
        self.emitted: list[tuple[str, RecordBatch]] = []

    @property
    def router_name(self) -> str:
        return "recording"

    async def emit(self, tag: str, batch: RecordBatch) -> None:
        if tag in self.fail_tags:
            raise EmitError(tag, "destination unavailable")
        self.emitted.append((tag, RecordBatch(tag=batch.tag, emitted_at=batch.emitted_at, records=list(batch.records))))

    def batches(self, tag: str) -> list[RecordBatch]:
        return [batch for emitted_tag, batch in self.emitted if emitted_tag == tag]

    def tags(self) -> list[str]:
        return [tag for tag, _ in self.emitted]


class RecordingTelemetry(TelemetrySink):
    def __init__(self) -> None:
        self.metrics: list[tuple[str, float, dict[str, Any]]] = []
        self.exceptions: list[BaseException] = []

    @property
    def sink_name(self) -> str:
        return "recording"

    async def _send_metric(self, name: str, value: float, properties: dict[str, Any]) -> None:
        self.metrics.append((name, value, properties))

    async def _send_exception(self, error: BaseException) -> None:
        self.exceptions.append(error)


class FakeUnixClock:
    def __init__(self, now: float = 1_771_416_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@dataclass
class Pipeline:
    """A wired collector and the fakes around it."""

    collector: NodeInventoryCollector
    fetcher: FakeFetcher
    router: RecordingRouter
    telemetry: RecordingTelemetry
    sampler: TelemetrySampler
    unix_clock: FakeUnixClock


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def platform(tmp_path: Path) -> PlatformConfig:
    return PlatformConfig(
        azure_stack_marker=str(tmp_path / "azurestackcloud.json"),
        log_settings_path=str(tmp_path / "log-data-collection-settings"),
        prom_settings_path=str(tmp_path / "prometheus-data-collection-settings"),
    )


@pytest.fixture()
def pipeline(platform: PlatformConfig) -> Pipeline:
    """Collector with page size 2, fake page source, router and telemetry."""
    fetcher = FakeFetcher([])
    router = RecordingRouter()
    telemetry = RecordingTelemetry()
    unix_clock = FakeUnixClock()
    sampler = TelemetrySampler(
        sink=telemetry,
        telemetry=TelemetryConfig(flush_interval_minutes=10),
        platform=platform,
        clock=unix_clock,
    )
    collector = NodeInventoryCollector(
        fetcher=fetcher,
        transformer=NodeTransformer(
            cluster_id=CLUSTER_ID,
            cluster_name=CLUSTER_NAME,
            platform_marker=platform.azure_stack_marker,
        ),
        emitter=BatchEmitter(router=router, telemetry=telemetry),
        sampler=sampler,
        telemetry=telemetry,
        page_size=2,
        run_interval=60.0,
        clock=lambda: CYCLE_TIME,
    )
    return Pipeline(
        collector=collector,
        fetcher=fetcher,
        router=router,
        telemetry=telemetry,
        sampler=sampler,
        unix_clock=unix_clock,
    )
