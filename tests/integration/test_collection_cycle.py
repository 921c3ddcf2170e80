"""Integration tests: full collection cycles through transformer, emitter and router.

Each test scripts the pages a fake API server returns and inspects what
reached the recording router and telemetry sink.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from nodeinventory.collector.emitter import (
    INSIGHTS_METRICS_TAG,
    METRICS_TAG,
    MIRROR_INVENTORY_TAG,
    RUNTIME_INVENTORY_TAG,
    BatchEmitter,
)
from nodeinventory.collector.errors import EmitError, FetchError, QuantityError
from nodeinventory.collector.node_collector import NodeInventoryCollector, first_page_locator, next_page_locator
from nodeinventory.collector.sampler import TelemetrySampler
from nodeinventory.collector.scheduler import SchedulerState
from nodeinventory.collector.transform import NodeTransformer
from nodeinventory.kube.client import NodePage
from nodeinventory.models.config import DEFAULT_INVENTORY_TAG, PlatformConfig, TelemetryConfig
from nodeinventory.models.cycle import CycleOutcome

from .conftest import (
    CLUSTER_ID,
    CLUSTER_NAME,
    CYCLE_TIME,
    CYCLE_TIME_STR,
    Pipeline,
    RecordingRouter,
    RecordingTelemetry,
    make_node,
)

# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------


class TestPaging:
    def test_locators(self) -> None:
        assert first_page_locator(400) == "nodes?limit=400"
        assert next_page_locator("nodes?limit=400", "abc") == "nodes?limit=400&continue=abc"

    def test_continuation_token_is_url_encoded(self) -> None:
        locator = next_page_locator("nodes?limit=2", "eyJ2Ijoi/bWV0YS5rOHMuaW8v+MSJ9=")
        assert locator == "nodes?limit=2&continue=eyJ2Ijoi%2FbWV0YS5rOHMuaW8v%2BMSJ9%3D"

    async def test_follows_continuation_tokens(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(items=[make_node("n1"), make_node("n2")], continuation_token="t1"),
                NodePage(items=[make_node("n3"), make_node("n4")], continuation_token="t2"),
                NodePage(items=[make_node("n5")], continuation_token=None),
            ]
        )

        stats = await pipeline.collector.enumerate()

        assert pipeline.fetcher.locators == [
            "nodes?limit=2",
            "nodes?limit=2&continue=t1",
            "nodes?limit=2&continue=t2",
        ]
        assert stats.outcome is CycleOutcome.SUCCEEDED
        assert stats.pages == 3
        assert stats.nodes == 5
        assert stats.skipped_nodes == 0

    async def test_one_inventory_batch_per_page(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(items=[make_node("n1"), make_node("n2")], continuation_token="t1"),
                NodePage(items=[make_node("n3")]),
            ]
        )

        await pipeline.collector.enumerate()

        primary = pipeline.router.batches(DEFAULT_INVENTORY_TAG)
        mirror = pipeline.router.batches(MIRROR_INVENTORY_TAG)
        runtime = pipeline.router.batches(RUNTIME_INVENTORY_TAG)
        assert [len(b) for b in primary] == [2, 1]
        assert [b.events() for b in mirror] == [b.events() for b in primary]
        assert [len(b) for b in runtime] == [2, 1]

    async def test_metrics_flushed_once_at_cycle_end(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(items=[make_node("n1"), make_node("n2")], continuation_token="t1"),
                NodePage(items=[make_node("n3")]),
            ]
        )

        await pipeline.collector.enumerate()

        metrics = pipeline.router.batches(METRICS_TAG)
        assert len(metrics) == 1
        assert len(metrics[0]) == 12
        assert pipeline.router.tags()[-1] == METRICS_TAG

    async def test_empty_middle_page_continues(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(items=[make_node("n1")], continuation_token="t1"),
                NodePage(items=[], continuation_token="t2"),
                NodePage(items=[make_node("n2")]),
            ]
        )

        stats = await pipeline.collector.enumerate()

        assert stats.pages == 3
        assert stats.nodes == 2
        assert len(pipeline.router.batches(DEFAULT_INVENTORY_TAG)) == 2

    async def test_empty_cluster_emits_nothing(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script([NodePage(items=[], continuation_token=None)])

        stats = await pipeline.collector.enumerate()

        assert stats.outcome is CycleOutcome.SUCCEEDED
        assert stats.pages == 1
        assert stats.records_emitted == 0
        assert pipeline.router.emitted == []


# ---------------------------------------------------------------------------
# Cycle consistency
# ---------------------------------------------------------------------------


class TestCycleConsistency:
    async def test_single_collection_time_for_whole_cycle(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(items=[make_node("n1")], continuation_token="t1"),
                NodePage(items=[make_node("n2", capacity={"cpu": "8", "nvidia.com/gpu": "1"})]),
            ]
        )

        await pipeline.collector.enumerate()

        times: set[str] = set()
        for tag, batch in pipeline.router.emitted:
            assert batch.emitted_at == CYCLE_TIME
            for event in batch.events():
                if tag == METRICS_TAG:
                    times.add(event["Timestamp"])
                else:
                    times.update(item["CollectionTime"] for item in event["DataItems"])
        assert times == {CYCLE_TIME_STR}

    async def test_inventory_content(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script([NodePage(items=[make_node("n1", ready=False, runtime="docker://20.10.7")])])

        await pipeline.collector.enumerate()

        item = pipeline.router.batches(DEFAULT_INVENTORY_TAG)[0].events()[0]["DataItems"][0]
        assert item["Computer"] == "n1"
        assert item["ClusterId"] == CLUSTER_ID
        assert item["ClusterName"] == CLUSTER_NAME
        assert item["Status"] == ""
        assert item["LastTransitionTimeReady"] == "2026-02-18T11:00:00Z"
        assert item["KubernetesProviderID"] == "azure"

        runtime_item = pipeline.router.batches(RUNTIME_INVENTORY_TAG)[0].events()[0]["DataItems"][0]
        assert runtime_item["DockerVersion"] == "20.10.7"

    async def test_azure_stack_marker(self, pipeline: Pipeline, platform: PlatformConfig) -> None:
        Path(platform.azure_stack_marker).write_text("{}")
        pipeline.fetcher.script([NodePage(items=[make_node("n1")])])

        await pipeline.collector.enumerate()

        item = pipeline.router.batches(DEFAULT_INVENTORY_TAG)[0].events()[0]["DataItems"][0]
        assert item["KubernetesProviderID"] == "azurestack"

    async def test_gpu_metrics_emitted_per_page(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(
                    items=[
                        make_node("gpu-0", capacity={"cpu": "24", "nvidia.com/gpu": "4"}, allocatable={}),
                        make_node("cpu-0"),
                    ],
                )
            ]
        )

        await pipeline.collector.enumerate()

        insights = pipeline.router.batches(INSIGHTS_METRICS_TAG)
        assert len(insights) == 1
        assert [(r.computer, r.metric_name, r.value) for r in insights[0].records] == [
            ("gpu-0", "nodeGpuCapacity", 4.0),
        ]

    async def test_records_emitted_and_last_cycle(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script([NodePage(items=[make_node("n1"), make_node("n2")])])

        stats = await pipeline.collector.enumerate()

        # inventory 2 + mirror 2 + runtime 2 + metrics 8
        assert stats.records_emitted == 14
        assert stats.collection_time == CYCLE_TIME_STR
        assert pipeline.collector.last_cycle is stats


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestFailureIsolation:
    async def test_fetch_failure_aborts_cycle(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(items=[make_node("n1"), make_node("n2")], continuation_token="t1"),
                FetchError("nodes?limit=2&continue=t1", "HTTP 500"),
            ]
        )

        stats = await pipeline.collector.enumerate()

        assert stats.outcome is CycleOutcome.FAILED
        assert "HTTP 500" in (stats.error or "")
        assert stats.pages == 1
        assert len(pipeline.router.batches(DEFAULT_INVENTORY_TAG)) == 1
        assert len(pipeline.router.batches(METRICS_TAG)[0]) == 8
        assert any(isinstance(e, FetchError) for e in pipeline.telemetry.exceptions)

    async def test_first_page_failure_emits_nothing(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script([FetchError("nodes?limit=2", "connection refused")])

        stats = await pipeline.collector.enumerate()

        assert stats.outcome is CycleOutcome.FAILED
        assert stats.pages == 0
        assert pipeline.router.emitted == []

    async def test_next_cycle_recovers(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script([FetchError("nodes?limit=2", "connection refused")])
        await pipeline.collector.enumerate()

        pipeline.fetcher.script([NodePage(items=[make_node("n1")])])
        stats = await pipeline.collector.enumerate()

        assert stats.outcome is CycleOutcome.SUCCEEDED
        assert len(pipeline.router.batches(DEFAULT_INVENTORY_TAG)) == 1

    async def test_malformed_node_skipped(self, pipeline: Pipeline) -> None:
        nameless = make_node("n2")
        del nameless["metadata"]["name"]
        pipeline.fetcher.script([NodePage(items=[make_node("n1"), nameless, make_node("n3")])])

        stats = await pipeline.collector.enumerate()

        assert stats.outcome is CycleOutcome.SUCCEEDED
        assert stats.nodes == 2
        assert stats.skipped_nodes == 1
        inventory = pipeline.router.batches(DEFAULT_INVENTORY_TAG)[0]
        assert [r.computer for r in inventory.records] == ["n1", "n3"]
        metrics = pipeline.router.batches(METRICS_TAG)[0]
        assert {r.computer for r in metrics.records} == {"n1", "n3"}

    async def test_bad_quantity_drops_page_metrics_only(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script(
            [
                NodePage(
                    items=[
                        make_node("n1"),
                        make_node("n2", capacity={"cpu": "lots", "memory": "8Gi", "nvidia.com/gpu": "2"}),
                    ],
                    continuation_token="t1",
                ),
                NodePage(items=[make_node("n3")]),
            ]
        )

        stats = await pipeline.collector.enumerate()

        assert stats.outcome is CycleOutcome.SUCCEEDED
        assert [len(b) for b in pipeline.router.batches(DEFAULT_INVENTORY_TAG)] == [2, 1]
        # Only the second page contributed capacity metrics.
        metrics = pipeline.router.batches(METRICS_TAG)[0]
        assert {r.computer for r in metrics.records} == {"n3"}
        # GPU derivation has its own boundary.
        insights = pipeline.router.batches(INSIGHTS_METRICS_TAG)[0]
        assert [r.computer for r in insights.records] == ["n2"]
        assert any(isinstance(e, QuantityError) for e in pipeline.telemetry.exceptions)

    async def test_router_failure_isolated_to_destination(self, pipeline: Pipeline) -> None:
        pipeline.router.fail_tags.add(MIRROR_INVENTORY_TAG)
        pipeline.fetcher.script([NodePage(items=[make_node("n1")])])

        stats = await pipeline.collector.enumerate()

        assert stats.outcome is CycleOutcome.SUCCEEDED
        assert pipeline.router.tags() == [DEFAULT_INVENTORY_TAG, RUNTIME_INVENTORY_TAG, METRICS_TAG]
        assert any(isinstance(e, EmitError) for e in pipeline.telemetry.exceptions)


# ---------------------------------------------------------------------------
# Telemetry sampling
# ---------------------------------------------------------------------------


class TestTelemetrySampling:
    async def test_no_sample_before_threshold(self, pipeline: Pipeline) -> None:
        pipeline.fetcher.script([NodePage(items=[make_node("n1")])])

        stats = await pipeline.collector.enumerate()

        assert stats.samples_sent == 0
        assert pipeline.telemetry.metrics == []

    async def test_every_node_on_due_page_is_sampled(self, pipeline: Pipeline) -> None:
        pipeline.unix_clock.now += 11 * 60
        pipeline.fetcher.script(
            [
                NodePage(items=[make_node("n1"), make_node("n2")], continuation_token="t1"),
                NodePage(items=[make_node("n3")]),
            ]
        )

        stats = await pipeline.collector.enumerate()

        assert stats.samples_sent == 2
        sampled = [props["Computer"] for _, _, props in pipeline.telemetry.metrics]
        assert sampled == ["n1", "n1", "n2", "n2"]
        assert pipeline.sampler.state.last_sample_unix_time == pipeline.unix_clock.now

    async def test_window_restarts_after_sampling(self, pipeline: Pipeline) -> None:
        pipeline.unix_clock.now += 11 * 60
        pipeline.fetcher.script([NodePage(items=[make_node("n1")])])
        await pipeline.collector.enumerate()

        pipeline.unix_clock.now += 5 * 60
        pipeline.fetcher.script([NodePage(items=[make_node("n1")])])
        stats = await pipeline.collector.enumerate()

        assert stats.samples_sent == 0


# ---------------------------------------------------------------------------
# Scheduled operation
# ---------------------------------------------------------------------------


class _RepeatingFetcher:
    def __init__(self) -> None:
        self.calls = 0

    async def fetch_page(self, locator: str) -> NodePage:
        self.calls += 1
        return NodePage(items=[make_node("n1")])


class TestScheduledCollection:
    async def test_collector_runs_on_schedule_and_stops(self, platform: PlatformConfig) -> None:
        fetcher = _RepeatingFetcher()
        router = RecordingRouter()
        telemetry = RecordingTelemetry()
        collector = NodeInventoryCollector(
            fetcher=fetcher,
            transformer=NodeTransformer(CLUSTER_ID, CLUSTER_NAME, platform.azure_stack_marker),
            emitter=BatchEmitter(router=router, telemetry=telemetry),
            sampler=TelemetrySampler(telemetry, TelemetryConfig(), platform),
            telemetry=telemetry,
            page_size=50,
            run_interval=0.02,
        )
        assert collector.scheduler_state is SchedulerState.IDLE

        collector.start()
        await asyncio.sleep(0.15)
        await collector.stop()

        assert fetcher.calls >= 2
        assert collector.scheduler_state is SchedulerState.STOPPED
        assert collector.last_cycle is not None
        assert collector.last_cycle.outcome is CycleOutcome.SUCCEEDED
        assert len(router.batches(DEFAULT_INVENTORY_TAG)) == fetcher.calls

    async def test_second_start_rejected_and_stop_halts_collection(self, platform: PlatformConfig) -> None:
        fetcher = _RepeatingFetcher()
        telemetry = RecordingTelemetry()
        collector = NodeInventoryCollector(
            fetcher=fetcher,
            transformer=NodeTransformer(CLUSTER_ID, CLUSTER_NAME, platform.azure_stack_marker),
            emitter=BatchEmitter(router=RecordingRouter(), telemetry=telemetry),
            sampler=TelemetrySampler(telemetry, TelemetryConfig(), platform),
            telemetry=telemetry,
            page_size=50,
            run_interval=0.02,
        )

        collector.start()
        with pytest.raises(RuntimeError, match="already started"):
            collector.start()
        await asyncio.sleep(0.07)
        await collector.stop()

        calls_at_stop = fetcher.calls
        await asyncio.sleep(0.07)
        assert calls_at_stop >= 1
        assert fetcher.calls == calls_at_stop
        assert collector.scheduler_state is SchedulerState.STOPPED

        collector.start()
        await asyncio.sleep(0.07)
        await collector.stop()
        assert fetcher.calls > calls_at_stop
