"""Logging for the node inventory agent.

Every module logs through structlog with a ``component`` key naming the part
of the agent that spoke (``collector.nodes``, ``kube.client``,
``sinks.router`` and so on). ``setup_logging`` renders each event as one JSON
line on stderr with an ISO UTC ``ts`` and the level.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "info") -> None:
    """Route agent logs to stderr as JSON at *level*; the last call wins."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Logger for one agent component, e.g. ``get_logger("app")``."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
