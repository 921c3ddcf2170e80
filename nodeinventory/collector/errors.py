"""Error taxonomy for the collection pipeline.

Each failure domain has its own type so the collector can decide how far a
failure reaches:

FetchError             -- a page request failed; the cycle ends early.
NodeTransformError     -- one node is malformed; only that node is skipped.
MetricsDerivationError -- metric records for a page could not be derived;
                          inventory emission is unaffected.
EmitError              -- the router rejected a batch for one destination.

None of these ever escapes a collection cycle.
"""

from __future__ import annotations


class CollectorError(Exception):
    """Base class for every error raised inside a collection cycle."""


class FetchError(CollectorError):
    """Raised when a node list page cannot be retrieved or decoded."""

    def __init__(self, locator: str, reason: str) -> None:
        super().__init__(f"Failed to fetch '{locator}': {reason}")
        self.locator = locator
        self.reason = reason


class NodeTransformError(CollectorError):
    """Raised when a single node object cannot be turned into records."""

    def __init__(self, reason: str, node_name: str | None = None) -> None:
        label = node_name or "<unnamed>"
        super().__init__(f"Cannot transform node {label}: {reason}")
        self.node_name = node_name
        self.reason = reason


class MetricsDerivationError(CollectorError):
    """Raised when capacity, allocatable or accelerator values are unusable."""


class QuantityError(MetricsDerivationError, ValueError):
    """Raised for a resource quantity string that does not parse."""


class EmitError(CollectorError):
    """Raised by a router when a batch could not be delivered."""

    def __init__(self, tag: str, reason: str) -> None:
        super().__init__(f"Failed to emit batch to '{tag}': {reason}")
        self.tag = tag
        self.reason = reason
