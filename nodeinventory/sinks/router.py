"""Downstream record routers.

A router accepts a tagged, timestamped RecordBatch and delivers it. It may
raise EmitError; the BatchEmitter catches failures per destination.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
import structlog

from nodeinventory.collector.errors import EmitError
from nodeinventory.models.records import RecordBatch

_log = structlog.get_logger(component="sinks.router")


class RecordRouter(ABC):
    """Abstract base class for record destinations."""

    @property
    @abstractmethod
    def router_name(self) -> str:
        """Identifier used in logs."""

    @abstractmethod
    async def emit(self, tag: str, batch: RecordBatch) -> None:
        """Deliver *batch* under *tag*.

        Raises:
            EmitError: if the batch was not accepted.
        """

    async def close(self) -> None:
        return None


class LogRecordRouter(RecordRouter):
    """Logs each batch instead of delivering it anywhere."""

    @property
    def router_name(self) -> str:
        return "log"

    async def emit(self, tag: str, batch: RecordBatch) -> None:
        _log.info(
            "batch_routed",
            tag=tag,
            records=len(batch),
            emitted_at=batch.emitted_at.isoformat(),
        )
        _log.debug("batch_routed_events", tag=tag, events=batch.events())


class HttpRecordRouter(RecordRouter):
    """POSTs each batch as JSON to a forwarding endpoint.

    Body: ``{"tag": ..., "time": <unix seconds>, "records": [...]}``.

    Args:
        endpoint:  Forwarder URL.
        timeout:   Request timeout in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("Router endpoint must not be empty")
        self._endpoint = endpoint
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def router_name(self) -> str:
        return "http"

    async def emit(self, tag: str, batch: RecordBatch) -> None:
        body = {
            "tag": tag,
            "time": batch.emitted_at.timestamp(),
            "records": batch.events(),
        }
        try:
            response = await self._client.post(self._endpoint, json=body)
        except httpx.TimeoutException as exc:
            raise EmitError(tag, "request timed out") from exc
        except httpx.HTTPError as exc:
            raise EmitError(tag, str(exc)) from exc
        if not response.is_success:
            raise EmitError(tag, f"HTTP {response.status_code}: {response.text[:200]}")

    async def close(self) -> None:
        await self._client.aclose()


def build_record_router(endpoint: str, timeout: float = 10.0) -> RecordRouter:
    """Pick the HTTP router when an endpoint is configured, else the log router."""
    if endpoint:
        _log.info("record_router_selected", router="http", endpoint=endpoint)
        return HttpRecordRouter(endpoint=endpoint, timeout=timeout)
    _log.info("record_router_selected", router="log")
    return LogRecordRouter()
