"""Cancellable periodic scheduling.

IntervalTimer
    Absolute next-fire-time accumulation: each tick is scheduled at
    ``previous + interval`` so slow cycles do not add drift. When the next
    fire time is already in the past the tick is due immediately and the
    schedule restarts from now. The wait is an ``asyncio.Condition`` timed
    wait that ``cancel()`` interrupts.

PeriodicScheduler
    Owns one asyncio task that alternates waiting and running the unit of
    work. ``stop()`` never interrupts a running cycle: it raises the
    terminal flag, wakes the wait and awaits the task, so shutdown takes at
    most as long as the in-flight cycle.

State machine: idle -> waiting -> running -> waiting ... -> stopping -> stopped.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum

import structlog

_log = structlog.get_logger(component="collector.scheduler")


class TickResult(StrEnum):
    """Outcome of waiting for the next tick."""

    FIRED = "fired"
    CANCELLED = "cancelled"


class SchedulerState(StrEnum):
    IDLE = "idle"
    WAITING = "waiting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class IntervalTimer:
    """Drift-free interval timer with an interruptible wait.

    Args:
        interval: Seconds between ticks.
        clock:    Monotonic time source, injectable for tests.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._clock = clock
        self._condition = asyncio.Condition()
        self._finished = False
        self._next_fire: float | None = None

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def next_fire(self) -> float | None:
        return self._next_fire

    def reset(self) -> None:
        """Anchor the schedule at the current time."""
        self._next_fire = self._clock()

    def next_timeout(self) -> float:
        """Advance the schedule by one interval and return the wait in seconds."""
        if self._next_fire is None:
            self.reset()
        assert self._next_fire is not None
        self._next_fire += self.interval
        now = self._clock()
        if self._next_fire <= now:
            self._next_fire = now
            return 0.0
        return self._next_fire - now

    async def wait_until_next_tick(self) -> TickResult:
        async with self._condition:
            if self._finished:
                return TickResult.CANCELLED
            timeout = self.next_timeout()
            try:
                await asyncio.wait_for(self._condition.wait_for(lambda: self._finished), timeout=timeout)
            except TimeoutError:
                pass
            return TickResult.CANCELLED if self._finished else TickResult.FIRED

    async def cancel(self) -> None:
        """Set the terminal flag and wake any pending wait."""
        async with self._condition:
            self._finished = True
            self._condition.notify_all()


class PeriodicScheduler:
    """Runs *work* every *interval* seconds on a single background task.

    A cycle that raises is logged, passed to *on_error* and otherwise
    ignored; the next tick still fires.

    Args:
        name:     Task name, also used in logs.
        interval: Seconds between cycle starts.
        work:     Coroutine function executed once per tick.
        on_error: Optional coroutine function receiving a cycle's exception.
        clock:    Monotonic time source for the timer.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        work: Callable[[], Awaitable[object]],
        on_error: Callable[[Exception], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._work = work
        self._on_error = on_error
        self._timer = IntervalTimer(interval, clock=clock)
        self._task: asyncio.Task[None] | None = None
        self.state = SchedulerState.IDLE
        self.cycles_run = 0

    @property
    def timer(self) -> IntervalTimer:
        return self._timer

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"scheduler {self.name} already started")
        self._timer.reset()
        self._task = asyncio.create_task(self._run(), name=self.name)
        _log.info("scheduler_started", scheduler=self.name, interval=self._timer.interval)

    async def stop(self) -> None:
        """Stop after the in-flight cycle (if any) completes. Idempotent."""
        if self._task is None:
            self.state = SchedulerState.STOPPED
            return
        if self.state is not SchedulerState.STOPPED:
            self.state = SchedulerState.STOPPING
        await self._timer.cancel()
        await self._task
        _log.info("scheduler_stopped", scheduler=self.name, cycles=self.cycles_run)

    async def _run(self) -> None:
        while True:
            self._set_state(SchedulerState.WAITING)
            if await self._timer.wait_until_next_tick() is TickResult.CANCELLED:
                break
            self._set_state(SchedulerState.RUNNING)
            try:
                await self._work()
            except Exception as exc:  # noqa: BLE001
                _log.warning("scheduled_cycle_failed", scheduler=self.name, error=str(exc))
                if self._on_error is not None:
                    await self._on_error(exc)
            self.cycles_run += 1
        self.state = SchedulerState.STOPPED

    def _set_state(self, state: SchedulerState) -> None:
        if self.state is not SchedulerState.STOPPING:
            self.state = state
