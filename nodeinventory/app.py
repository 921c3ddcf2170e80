"""Application bootstrap for the node inventory agent.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → telemetry sink → router
              → collector (scheduler) → REST

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly. The
collector's stop waits for an in-flight cycle to finish.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from nodeinventory.config import load_config
from nodeinventory.models.config import NodeInventoryConfig
from nodeinventory.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from nodeinventory.collector.node_collector import NodeInventoryCollector
    from nodeinventory.kube.client import KubeApiClient
    from nodeinventory.sinks.router import RecordRouter
    from nodeinventory.sinks.telemetry import TelemetrySink

_SHUTDOWN_GRACE_SECONDS = 120


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class NodeInventoryApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already
    stopped) is safe.
    """

    def __init__(self) -> None:
        self.config: NodeInventoryConfig | None = None

        self._kube_client: KubeApiClient | None = None
        self._telemetry: TelemetrySink | None = None
        self._router: RecordRouter | None = None
        self._collector: NodeInventoryCollector | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("nodeinventory starting", version=_nodeinventory_version())

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_kube_client()

        # --- 4. Telemetry sink -------------------------------------------
        await self._start_telemetry()

        # --- 5. Record router --------------------------------------------
        await self._start_router()

        # --- 6. Collector ------------------------------------------------
        await self._start_collector()

        # --- 7. REST API -------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("nodeinventory started", port=self.config.api.port)

    async def _start_kube_client(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting kube client")
        try:
            from nodeinventory.kube.client import KubeApiClient

            self._kube_client = await KubeApiClient.from_config(self.config.kube)
        except Exception as exc:
            raise _ComponentError("kube_client", exc) from exc

    async def _start_telemetry(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from nodeinventory.sinks.telemetry import build_telemetry_sink

            self._telemetry = build_telemetry_sink(
                endpoint=self.config.telemetry.endpoint,
                timeout=self.config.telemetry.timeout,
            )
        except Exception as exc:
            raise _ComponentError("telemetry", exc) from exc

    async def _start_router(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from nodeinventory.sinks.router import build_record_router

            self._router = build_record_router(
                endpoint=self.config.router.endpoint,
                timeout=self.config.router.timeout,
            )
        except Exception as exc:
            raise _ComponentError("router", exc) from exc

    async def _start_collector(self) -> None:
        """Wire transformer, sampler and emitter into the collector and start ticking."""
        assert self._log is not None
        assert self.config is not None
        assert self._kube_client is not None
        assert self._telemetry is not None
        assert self._router is not None
        self._log.debug("starting collector")
        try:
            from nodeinventory.collector.emitter import BatchEmitter, DestinationTags
            from nodeinventory.collector.node_collector import NodeInventoryCollector
            from nodeinventory.collector.sampler import TelemetrySampler
            from nodeinventory.collector.transform import NodeTransformer

            config = self.config
            collector = NodeInventoryCollector(
                fetcher=self._kube_client,
                transformer=NodeTransformer(
                    cluster_id=config.cluster_id,
                    cluster_name=config.cluster_name,
                    platform_marker=config.platform.azure_stack_marker,
                ),
                emitter=BatchEmitter(
                    router=self._router,
                    telemetry=self._telemetry,
                    tags=DestinationTags(inventory=config.collector.tag),
                    test_mode=config.collector.test_mode,
                ),
                sampler=TelemetrySampler(
                    sink=self._telemetry,
                    telemetry=config.telemetry,
                    platform=config.platform,
                ),
                telemetry=self._telemetry,
                page_size=config.collector.page_size,
                run_interval=config.collector.run_interval_seconds,
            )
            collector.start()
            self._collector = collector
            self._log.info(
                "collector started",
                interval=config.collector.run_interval_seconds,
                tag=config.collector.tag,
            )
        except Exception as exc:
            raise _ComponentError("collector", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from nodeinventory.api import build_app

            fastapi_app = build_app(collector=self._collector, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            # The collector keeps running without its status endpoints
            self._log.warning("rest api failed to start", error=str(exc))
            self._rest_server = None

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("nodeinventory shutting down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_component("collector", self._collector)
        await self._stop_component("router", self._router, "close")
        await self._stop_component("telemetry", self._telemetry, "close")
        await self._stop_component("kube_client", self._kube_client, "close")
        self._collector = None
        self._router = None
        self._telemetry = None
        self._kube_client = None

        log.info("nodeinventory stopped")

    async def _stop_component(self, name: str, component: object | None, method: str = "stop") -> None:
        """Call *method* on a component if present, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, method, None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))


def _nodeinventory_version() -> str:
    from nodeinventory import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = NodeInventoryApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()


def run() -> None:
    """Console-script entrypoint."""
    asyncio.run(main())
