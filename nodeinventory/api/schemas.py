"""Pydantic response schemas for the REST API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error envelope returned for every non-2xx response."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str = Field(description="'ok' while the scheduler is alive, 'degraded' otherwise.")
    scheduler_state: str
    version: str


class CycleResponse(BaseModel):
    """Statistics of the most recent collection cycle."""

    collection_time: str
    outcome: str
    pages: int
    nodes: int
    skipped_nodes: int
    records_emitted: int
    samples_sent: int
    duration_seconds: float
    error: str | None = None


class StatusResponse(BaseModel):
    cluster_id: str
    cluster_name: str
    scheduler_state: str
    run_interval_seconds: int
    last_cycle: CycleResponse | None = None
