"""Polls queue status counts, reports progress and detects completion."""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping

from .graceful_shutdown import GracefulShutdown
from .job_queue import COMPLETED, PENDING_STATUSES, STATUSES, JobQueue


class MonitorState(str, enum.Enum):
    ACTIVE = "active"
    PENDING_IDLE = "pending-idle"
    IDLE = "idle"


@dataclass(frozen=True)
class QueueProgress:
    total: int
    completed: int
    tally: str


def summarize(counts: Mapping[str, int]) -> QueueProgress:
    """Collapse raw status counts into totals and a compact tally string."""

    total = sum(int(value) for value in counts.values())
    completed = int(counts.get(COMPLETED, 0))
    ordered = [status for status in STATUSES if status in counts]
    ordered += sorted(status for status in counts if status not in STATUSES)
    tally = " ".join(f"{status}={int(counts[status])}" for status in ordered if counts[status])
    return QueueProgress(total=total, completed=completed, tally=tally)


def has_pending_work(counts: Mapping[str, int]) -> bool:
    return any(int(counts.get(status, 0)) > 0 for status in PENDING_STATUSES)


class ProgressMonitor:
    """Debounced idle detection over one or more durable queues.

    The monitor only declares the run finished after every queue has had no
    active, waiting, delayed or paused job for ``grace_period`` seconds
    straight; any pending job seen in between resets the timer.
    """

    def __init__(
        self,
        queues: Mapping[str, JobQueue],
        *,
        shutdown: GracefulShutdown,
        logger,
        interval: float = 1.0,
        grace_period: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.queues = dict(queues)
        self.shutdown = shutdown
        self.logger = logger
        self.interval = interval
        self.grace_period = grace_period
        self._clock = clock
        self.state = MonitorState.ACTIVE
        self.idle_since: float | None = None

    def observe(self, counts_by_queue: Mapping[str, Mapping[str, int]], now: float) -> MonitorState:
        pending = any(has_pending_work(counts) for counts in counts_by_queue.values())

        if self.state is MonitorState.IDLE:
            return self.state
        if pending:
            if self.state is MonitorState.PENDING_IDLE:
                self.logger.debug("New work appeared; idle timer reset")
            self.state = MonitorState.ACTIVE
            self.idle_since = None
            return self.state

        if self.state is MonitorState.ACTIVE:
            self.state = MonitorState.PENDING_IDLE
            self.idle_since = now
        if self.idle_since is not None and now - self.idle_since >= self.grace_period:
            self.state = MonitorState.IDLE
        return self.state

    async def poll(self) -> Dict[str, Dict[str, int]]:
        snapshot: Dict[str, Dict[str, int]] = {}
        for name, queue in self.queues.items():
            snapshot[name] = await asyncio.to_thread(queue.get_job_counts)
        return snapshot

    def report(self, snapshot: Mapping[str, Mapping[str, int]]) -> None:
        for name, counts in snapshot.items():
            progress = summarize(counts)
            self.logger.info(
                "%s: %d/%d completed [%s]",
                name,
                progress.completed,
                progress.total,
                progress.tally or "empty",
            )

    async def run(self) -> MonitorState:
        while not self.shutdown.is_triggered():
            try:
                snapshot = await self.poll()
            except Exception as exc:
                self.logger.warning("Progress poll failed: %s", exc)
            else:
                self.report(snapshot)
                if self.observe(snapshot, self._clock()) is MonitorState.IDLE:
                    self.logger.info(
                        "Queues idle for %.1fs; shutting down workers.", self.grace_period
                    )
                    self.shutdown.trigger("idle")
                    break
            if await self.shutdown.wait(self.interval):
                break
        return self.state


__all__ = ["ProgressMonitor", "MonitorState", "QueueProgress", "summarize", "has_pending_work"]
