"""Collection cycle bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class CycleOutcome(StrEnum):
    """How a collection cycle ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class CycleStats:
    """Counters for one ``enumerate`` invocation.

    A FAILED cycle still reports the pages and records it managed to
    process and emit before the failure.
    """

    collection_time: str
    pages: int = 0
    nodes: int = 0
    skipped_nodes: int = 0
    records_emitted: int = 0
    samples_sent: int = 0
    outcome: CycleOutcome = CycleOutcome.SUCCEEDED
    error: str | None = None
    duration_seconds: float = 0.0
