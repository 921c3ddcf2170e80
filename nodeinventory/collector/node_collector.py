"""Node inventory collector: one collection cycle and its schedule.

A cycle (``enumerate``) captures a single collection time, then walks the
node list page by page following continuation tokens. Each page is
transformed, sampled for telemetry and flushed before the next page is
requested, so memory holds one page of raw nodes at a time. Capacity and
allocatable metric records are derived per page and accumulated for one
flush at the end of the cycle.

Failure boundaries:

* a malformed node is skipped, the rest of the page continues;
* metric or GPU derivation failing for a page drops only those records;
* a router failure affects only that destination;
* a fetch failure ends the cycle early.

Nothing escapes ``enumerate``; the scheduler keeps ticking.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime
from urllib.parse import quote

import structlog

from nodeinventory.collector.emitter import BatchEmitter
from nodeinventory.collector.errors import NodeTransformError
from nodeinventory.collector.sampler import TelemetrySampler
from nodeinventory.collector.scheduler import PeriodicScheduler, SchedulerState
from nodeinventory.collector.transform import NodeTransformer
from nodeinventory.kube.client import NodePage, PageFetcher
from nodeinventory.models.cycle import CycleOutcome, CycleStats
from nodeinventory.models.records import RawNode, format_collection_time
from nodeinventory.observability.metrics import (
    collection_cycles_total,
    cycle_duration_seconds,
    metrics_derivation_errors_total,
    node_pages_fetched_total,
    node_transform_errors_total,
)
from nodeinventory.sinks.telemetry import TelemetrySink

_log = structlog.get_logger(component="collector.nodes")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def first_page_locator(page_size: int) -> str:
    return f"nodes?limit={page_size}"


def next_page_locator(locator: str, continuation_token: str) -> str:
    return f"{locator}&continue={quote(continuation_token, safe='')}"


class NodeInventoryCollector:
    """Polls the node list and fans the derived records out.

    Args:
        fetcher:      Page source (normally ``KubeApiClient``).
        transformer:  Raw node to record derivation.
        emitter:      Batch builder and router fan-out.
        sampler:      Operational telemetry sampling policy.
        telemetry:    Sink for exception reports.
        page_size:    ``limit`` for each list request.
        run_interval: Seconds between cycle starts once ``start()`` is called.
        clock:        Source of the per-cycle collection time.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        transformer: NodeTransformer,
        emitter: BatchEmitter,
        sampler: TelemetrySampler,
        telemetry: TelemetrySink,
        page_size: int = 400,
        run_interval: float = 60.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._transformer = transformer
        self._emitter = emitter
        self._sampler = sampler
        self._telemetry = telemetry
        self._page_size = page_size
        self._run_interval = run_interval
        self._clock = clock
        self._scheduler: PeriodicScheduler | None = None
        self.last_cycle: CycleStats | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def scheduler_state(self) -> SchedulerState:
        if self._scheduler is None:
            return SchedulerState.IDLE
        return self._scheduler.state

    def start(self) -> None:
        """Begin periodic collection. The first cycle runs one interval from now.

        Raises:
            RuntimeError: if collection is already running.
        """
        if self._scheduler is not None and self._scheduler.state is not SchedulerState.STOPPED:
            raise RuntimeError("node inventory collector already started")
        self._sampler.reset()
        self._scheduler = PeriodicScheduler(
            name="node-inventory",
            interval=self._run_interval,
            work=self.enumerate,
            on_error=self._telemetry.emit_exception,
        )
        self._scheduler.start()

    async def stop(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def enumerate(self) -> CycleStats:
        """Run one full collection cycle and return its statistics."""
        started = time.monotonic()
        captured_at = self._clock()
        collection_time = format_collection_time(captured_at)
        stats = CycleStats(collection_time=collection_time)
        self._emitter.begin_cycle(captured_at)

        locator = first_page_locator(self._page_size)
        _log.info("enumerate_started", collection_time=collection_time, locator=locator)
        try:
            page = await self._fetcher.fetch_page(locator)
            await self._process_page(page, collection_time, stats)
            while page.continuation_token:
                page = await self._fetcher.fetch_page(next_page_locator(locator, page.continuation_token))
                await self._process_page(page, collection_time, stats)
        except Exception as exc:  # noqa: BLE001
            stats.outcome = CycleOutcome.FAILED
            stats.error = str(exc)
            _log.warning(
                "enumerate_failed",
                collection_time=collection_time,
                pages=stats.pages,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            await self._telemetry.emit_exception(exc)

        # Metrics already derived from processed pages are flushed even when
        # a later page failed to fetch.
        await self._emitter.flush_cycle()

        stats.records_emitted = self._emitter.records_emitted
        stats.duration_seconds = time.monotonic() - started
        collection_cycles_total.labels(outcome=stats.outcome.value).inc()
        cycle_duration_seconds.observe(stats.duration_seconds)
        self.last_cycle = stats
        _log.info(
            "enumerate_finished",
            collection_time=collection_time,
            outcome=stats.outcome.value,
            pages=stats.pages,
            nodes=stats.nodes,
            skipped_nodes=stats.skipped_nodes,
            records_emitted=stats.records_emitted,
            duration_seconds=round(stats.duration_seconds, 3),
        )
        return stats

    async def _process_page(self, page: NodePage, collection_time: str, stats: CycleStats) -> None:
        stats.pages += 1
        node_pages_fetched_total.inc()
        if not page.items:
            if page.continuation_token:
                _log.info("empty_node_page", page=stats.pages)
            return

        batches = self._emitter.new_page()
        valid_nodes: list[RawNode] = []
        sampled = False
        for raw in page.items:
            try:
                inventory = self._transformer.to_inventory(raw, collection_time)
                runtime = self._transformer.to_runtime(raw, collection_time)
            except NodeTransformError as exc:
                stats.skipped_nodes += 1
                node_transform_errors_total.inc()
                _log.warning("node_transform_failed", node=exc.node_name, error=str(exc))
                continue

            batches.add_node(inventory, runtime)
            valid_nodes.append(raw)
            stats.nodes += 1
            if await self._sampler.maybe_sample(raw, inventory, runtime):
                sampled = True
                stats.samples_sent += 1

        if sampled:
            self._sampler.mark_sampled()

        try:
            self._emitter.add_metrics(self._transformer.page_metrics(valid_nodes, collection_time))
        except Exception as exc:  # noqa: BLE001
            await self._metrics_derivation_failed("capacity", exc)

        try:
            batches.add_insights_metrics(self._transformer.page_insights_metrics(valid_nodes, collection_time))
        except Exception as exc:  # noqa: BLE001
            await self._metrics_derivation_failed("gpu", exc)

        await self._emitter.flush_page(batches)
        _log.debug("node_page_flushed", page=stats.pages, nodes=len(valid_nodes))

    async def _metrics_derivation_failed(self, kind: str, exc: Exception) -> None:
        metrics_derivation_errors_total.labels(kind=kind).inc()
        _log.warning("metrics_derivation_failed", kind=kind, error_type=type(exc).__name__, error=str(exc))
        await self._telemetry.emit_exception(exc)
