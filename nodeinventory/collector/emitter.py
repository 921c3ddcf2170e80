"""Batch accumulation and multi-destination fan-out.

Per page the emitter holds an inventory batch, a runtime-inventory batch
and an insights-metrics (GPU) batch, flushed when the page is done. The
inventory batch goes to the configured primary tag and, with identical
content, to the mirror tag. Capacity/allocatable metrics accumulate for
the whole cycle and are flushed once at the end.

Empty batches are never routed. A failing destination is logged, reported
to telemetry and counted; the remaining destinations still receive their
batches.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog

from nodeinventory.models.config import DEFAULT_INVENTORY_TAG
from nodeinventory.models.records import (
    InsightsMetricRecord,
    InventoryRecord,
    MetricRecord,
    RecordBatch,
    RuntimeInventoryRecord,
)
from nodeinventory.observability.metrics import emit_errors_total, records_emitted_total
from nodeinventory.sinks.router import RecordRouter
from nodeinventory.sinks.telemetry import TelemetrySink

_log = structlog.get_logger(component="collector.emitter")

MIRROR_INVENTORY_TAG = "mdm.kubenodeinventory"
RUNTIME_INVENTORY_TAG = "oms.containerinsights.ContainerNodeInventory"
METRICS_TAG = "oms.api.KubePerf"
INSIGHTS_METRICS_TAG = "oms.api.InsightsMetrics"


@dataclass(frozen=True)
class DestinationTags:
    """Router tags for each record kind."""

    inventory: str = DEFAULT_INVENTORY_TAG
    inventory_mirror: str = MIRROR_INVENTORY_TAG
    runtime: str = RUNTIME_INVENTORY_TAG
    metrics: str = METRICS_TAG
    insights_metrics: str = INSIGHTS_METRICS_TAG


@dataclass
class PageBatches:
    """Batches filled while one page is processed."""

    inventory: RecordBatch
    runtime: RecordBatch
    insights_metrics: RecordBatch

    def add_node(self, inventory: InventoryRecord, runtime: RuntimeInventoryRecord) -> None:
        self.inventory.add(inventory)
        self.runtime.add(runtime)

    def add_insights_metrics(self, records: list[InsightsMetricRecord]) -> None:
        self.insights_metrics.extend(records)


@dataclass
class _CycleBatches:
    emitted_at: datetime
    metrics: RecordBatch
    records_emitted: int = 0


class BatchEmitter:
    """Builds tagged batches and hands them to the router.

    Args:
        router:     Downstream record router.
        telemetry:  Sink for exception reports on failed emissions.
        tags:       Destination tags.
        test_mode:  Log an explicit success line after non-empty emissions.
    """

    def __init__(
        self,
        router: RecordRouter,
        telemetry: TelemetrySink,
        tags: DestinationTags | None = None,
        test_mode: bool = False,
    ) -> None:
        self._router = router
        self._telemetry = telemetry
        self.tags = tags or DestinationTags()
        self._test_mode = test_mode
        self._cycle: _CycleBatches | None = None

    def begin_cycle(self, emitted_at: datetime) -> None:
        self._cycle = _CycleBatches(
            emitted_at=emitted_at,
            metrics=RecordBatch(tag=self.tags.metrics, emitted_at=emitted_at),
        )

    @property
    def records_emitted(self) -> int:
        """Records routed so far in the current cycle (mirror copies included)."""
        return self._cycle.records_emitted if self._cycle else 0

    def new_page(self) -> PageBatches:
        cycle = self._require_cycle()
        return PageBatches(
            inventory=RecordBatch(tag=self.tags.inventory, emitted_at=cycle.emitted_at),
            runtime=RecordBatch(tag=self.tags.runtime, emitted_at=cycle.emitted_at),
            insights_metrics=RecordBatch(tag=self.tags.insights_metrics, emitted_at=cycle.emitted_at),
        )

    def add_metrics(self, records: list[MetricRecord]) -> None:
        self._require_cycle().metrics.extend(records)

    async def flush_page(self, page: PageBatches) -> None:
        await self._emit(self.tags.inventory, page.inventory)
        await self._emit(self.tags.inventory_mirror, page.inventory)
        await self._emit(self.tags.runtime, page.runtime)
        if self._test_mode and len(page.inventory) > 0:
            _log.info("inventory_emit_stream_success", records=len(page.inventory))

        await self._emit(self.tags.insights_metrics, page.insights_metrics)
        if self._test_mode and len(page.insights_metrics) > 0:
            _log.info("insights_metrics_emit_stream_success", records=len(page.insights_metrics))

    async def flush_cycle(self) -> None:
        """Route the accumulated metrics batch and close the cycle."""
        cycle = self._require_cycle()
        await self._emit(self.tags.metrics, cycle.metrics)
        cycle.metrics = RecordBatch(tag=self.tags.metrics, emitted_at=cycle.emitted_at)

    async def _emit(self, tag: str, batch: RecordBatch) -> None:
        if len(batch) == 0:
            return
        cycle = self._require_cycle()
        try:
            await self._router.emit(tag, batch)
        except Exception as exc:  # noqa: BLE001
            _log.warning(
                "batch_emit_failed",
                tag=tag,
                records=len(batch),
                router=self._router.router_name,
                error=str(exc),
            )
            emit_errors_total.labels(tag=tag).inc()
            await self._telemetry.emit_exception(exc)
            return
        cycle.records_emitted += len(batch)
        records_emitted_total.labels(tag=tag).inc(len(batch))

    def _require_cycle(self) -> _CycleBatches:
        if self._cycle is None:
            raise RuntimeError("begin_cycle() must be called before emitting")
        return self._cycle
