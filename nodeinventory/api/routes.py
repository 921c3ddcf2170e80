"""REST routes: health, collector status and prometheus exposition."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from nodeinventory.api.schemas import CycleResponse, HealthResponse, StatusResponse
from nodeinventory.collector.scheduler import SchedulerState

router = APIRouter()
metrics_router = APIRouter()

_HEALTHY_STATES = {SchedulerState.IDLE, SchedulerState.WAITING, SchedulerState.RUNNING}


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from nodeinventory import __version__

    state = request.app.state.collector.scheduler_state
    return HealthResponse(
        status="ok" if state in _HEALTHY_STATES else "degraded",
        scheduler_state=state.value,
        version=__version__,
    )


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    collector = request.app.state.collector
    config = request.app.state.config
    last = collector.last_cycle

    last_cycle = None
    if last is not None:
        last_cycle = CycleResponse(
            collection_time=last.collection_time,
            outcome=last.outcome.value,
            pages=last.pages,
            nodes=last.nodes,
            skipped_nodes=last.skipped_nodes,
            records_emitted=last.records_emitted,
            samples_sent=last.samples_sent,
            duration_seconds=last.duration_seconds,
            error=last.error,
        )

    return StatusResponse(
        cluster_id=config.cluster_id,
        cluster_name=config.cluster_name,
        scheduler_state=collector.scheduler_state.value,
        run_interval_seconds=config.collector.run_interval_seconds,
        last_cycle=last_cycle,
    )


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
