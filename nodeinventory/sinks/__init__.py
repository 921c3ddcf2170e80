"""Destinations for collected records and operational telemetry.

Exports:
    RecordRouter        -- Abstract base for record destinations.
    LogRecordRouter     -- Logs batches (default when no endpoint is set).
    HttpRecordRouter    -- JSON POST to a forwarding endpoint.
    TelemetrySink       -- Abstract base for telemetry; never raises.
    LogTelemetrySink    -- Telemetry to the structured log.
    HttpTelemetrySink   -- Telemetry as JSON POST.
    build_record_router, build_telemetry_sink -- Factories used by the bootstrap.
"""

from nodeinventory.sinks.router import (
    HttpRecordRouter,
    LogRecordRouter,
    RecordRouter,
    build_record_router,
)
from nodeinventory.sinks.telemetry import (
    HttpTelemetrySink,
    LogTelemetrySink,
    TelemetrySink,
    build_telemetry_sink,
)

__all__ = [
    "HttpRecordRouter",
    "HttpTelemetrySink",
    "LogRecordRouter",
    "LogTelemetrySink",
    "RecordRouter",
    "TelemetrySink",
    "build_record_router",
    "build_telemetry_sink",
]
