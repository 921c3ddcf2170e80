"""FastAPI application factory for the node inventory agent.

Usage::

    from nodeinventory.api.app import create_app

    app = create_app(collector=collector, config=config)

The factory is used by both the production bootstrap
(``nodeinventory.app``) and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nodeinventory.api.routes import metrics_router, router
from nodeinventory.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(collector: Any, config: Any) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        collector: NodeInventoryCollector (or anything exposing
                   ``scheduler_state`` and ``last_cycle``).
        config:    NodeInventoryConfig.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from nodeinventory import __version__

    app = FastAPI(
        title="nodeinventory",
        summary="Kubernetes node inventory collector",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.collector = collector
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)
    app.include_router(metrics_router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
