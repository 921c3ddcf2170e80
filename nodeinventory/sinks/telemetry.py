"""Operational telemetry sinks.

TelemetrySink      -- ABC; public methods never raise.
LogTelemetrySink   -- Writes metrics and exceptions to the structured log.
HttpTelemetrySink  -- POSTs JSON envelopes to an ingestion endpoint.
"""

from __future__ import annotations

import traceback
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

_log = structlog.get_logger(component="sinks.telemetry")


class TelemetrySink(ABC):
    """Base class for telemetry destinations.

    Subclasses implement ``_send_metric`` and ``_send_exception`` and may
    raise freely; ``emit_metric`` and ``emit_exception`` swallow and log
    every failure so telemetry can never break a collection cycle.
    """

    @property
    @abstractmethod
    def sink_name(self) -> str:
        """Identifier used in logs."""

    @abstractmethod
    async def _send_metric(self, name: str, value: float, properties: dict[str, Any]) -> None: ...

    @abstractmethod
    async def _send_exception(self, error: BaseException) -> None: ...

    async def emit_metric(self, name: str, value: float, properties: dict[str, Any] | None = None) -> None:
        try:
            await self._send_metric(name, value, dict(properties or {}))
        except Exception as exc:  # noqa: BLE001
            _log.warning("telemetry_metric_failed", sink=self.sink_name, metric=name, error=str(exc))

    async def emit_exception(self, error: BaseException) -> None:
        try:
            await self._send_exception(error)
        except Exception as exc:  # noqa: BLE001
            _log.warning(
                "telemetry_exception_failed",
                sink=self.sink_name,
                original_error=type(error).__name__,
                error=str(exc),
            )

    async def close(self) -> None:
        return None


class LogTelemetrySink(TelemetrySink):
    """Telemetry written to the structured log only."""

    @property
    def sink_name(self) -> str:
        return "log"

    async def _send_metric(self, name: str, value: float, properties: dict[str, Any]) -> None:
        _log.info("telemetry_metric", metric=name, value=value, properties=properties)

    async def _send_exception(self, error: BaseException) -> None:
        _log.info("telemetry_exception", error_type=type(error).__name__, error=str(error))


class HttpTelemetrySink(TelemetrySink):
    """Sends telemetry as JSON to an HTTP ingestion endpoint.

    Args:
        endpoint: Full URL accepting POSTed telemetry envelopes.
        timeout:  Request timeout in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("Telemetry endpoint must not be empty")
        self._endpoint = endpoint
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def sink_name(self) -> str:
        return "http"

    async def _send_metric(self, name: str, value: float, properties: dict[str, Any]) -> None:
        await self._post(
            {
                "kind": "metric",
                "name": name,
                "value": value,
                "properties": {key: _stringify(val) for key, val in properties.items()},
            }
        )

    async def _send_exception(self, error: BaseException) -> None:
        await self._post(
            {
                "kind": "exception",
                "type": type(error).__name__,
                "message": str(error),
                "stack": "".join(traceback.format_exception(error)),
            }
        )

    async def _post(self, envelope: dict[str, Any]) -> None:
        envelope["time"] = datetime.now(tz=UTC).isoformat()
        response = await self._client.post(self._endpoint, json=envelope)
        response.raise_for_status()

    async def close(self) -> None:
        await self._client.aclose()


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def build_telemetry_sink(endpoint: str, timeout: float = 10.0) -> TelemetrySink:
    """Pick the HTTP sink when an endpoint is configured, else the log sink."""
    if endpoint:
        _log.info("telemetry_sink_selected", sink="http", endpoint=endpoint)
        return HttpTelemetrySink(endpoint=endpoint, timeout=timeout)
    _log.info("telemetry_sink_selected", sink="log")
    return LogTelemetrySink()
