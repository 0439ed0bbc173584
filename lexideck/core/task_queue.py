"""Single-flight FIFO scheduler for calls against a rate-limited service."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional

from ..errors import QueueClosedError
from ..logging_utils import get_logger
from .outcomes import Other, RateLimited, Success, TaskOutcome, failure_kind
from .rate_limiter import RateLimiter
from .retry import RetryCoordinator

Task = Callable[[], Awaitable[TaskOutcome]]
RateRefresher = Callable[[], Awaitable[float]]


@dataclass
class QueuedTask:
    task: Task
    future: asyncio.Future
    retries: int = 0


class TaskQueue:
    """Executes tasks one at a time, honouring the limiter and retry policy.

    Tasks are zero-argument callables returning an awaitable that resolves to
    a :class:`Success`, :class:`RateLimited` or :class:`Other` outcome. An
    exception raised by a task counts as :class:`Other`. Rate-limited tasks
    are re-inserted at the head of the queue so they run before anything
    submitted after them.
    """

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter | None = None,
        retry: RetryCoordinator | None = None,
        refresh_rate: RateRefresher | None = None,
        on_success: Callable[[Any], None] | None = None,
        on_error: Callable[[BaseException, str], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.rate_limiter = rate_limiter or RateLimiter()
        self.logger = logger or get_logger("scheduler")
        self.retry = retry or RetryCoordinator(logger=self.logger)
        self._refresh_rate = refresh_rate
        self._on_success = on_success
        self._on_error = on_error
        self._sleep = sleep
        self._pending: Deque[QueuedTask] = deque()
        self._wakeup = asyncio.Event()
        self._worker: Optional[asyncio.Task] = None
        self._in_flight = False
        self._closed = False

    # ------------------------------------------------------------------
    @property
    def size(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, task: Task) -> asyncio.Future:
        """Queue ``task`` and return a future for its final result."""

        if self._closed:
            raise QueueClosedError("TaskQueue is closed")
        future = asyncio.get_running_loop().create_future()
        self._pending.append(QueuedTask(task=task, future=future))
        self._ensure_worker()
        self._wakeup.set()
        return future

    async def submit(self, task: Task) -> Any:
        return await self.enqueue(task)

    def clear(self) -> None:
        """Drop every pending task.

        The dropped callers are neither resolved nor rejected; this is meant
        for tearing the whole queue down.
        """

        self._pending.clear()

    async def close(self) -> None:
        """Stop dispatching. Pending futures are left untouched."""

        self._closed = True
        worker, self._worker = self._worker, None
        if worker is None or worker.done():
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    async def refresh_rate_now(self) -> float:
        """Ask the refresher for a new ceiling; keep the old one on failure."""

        if self._refresh_rate is None:
            return self.rate_limiter.rate
        try:
            rate = await self._refresh_rate()
        except Exception as exc:
            self.logger.error("Error updating rate limit: %s", exc)
            return self.rate_limiter.rate
        applied = self.rate_limiter.set_rate(rate)
        self.logger.info("Updated rate limit: %s requests per second", applied)
        return applied

    # ------------------------------------------------------------------
    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name="task-queue-worker"
            )

    async def _run(self) -> None:
        while not self._closed:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            try:
                await self._process_next()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pragma: no cover - defensive logging
                self.logger.exception("Error in queue processing: %s", exc)

    async def _process_next(self) -> None:
        if self._refresh_rate is not None and self.rate_limiter.refresh_due:
            await self.refresh_rate_now()
            self.rate_limiter.reset_refresh_countdown()

        queued = self._pending.popleft()
        if queued.future.cancelled():
            return

        await self.rate_limiter.acquire()
        outcome = await self._execute(queued)

        if isinstance(outcome, Success):
            if not queued.future.done():
                queued.future.set_result(outcome.value)
            return
        await self._handle_failure(queued, outcome)

    async def _execute(self, queued: QueuedTask) -> TaskOutcome:
        self.rate_limiter.record_attempt()
        self._in_flight = True
        try:
            outcome = await queued.task()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            outcome = Other(exc)
        finally:
            self._in_flight = False

        if not isinstance(outcome, (Success, RateLimited, Other)):
            outcome = Other(TypeError(f"Task returned {outcome!r} instead of an outcome"))

        if isinstance(outcome, Success):
            self._notify(self._on_success, outcome.value)
        else:
            self._notify(self._on_error, outcome.error, failure_kind(outcome))
        return outcome

    async def _handle_failure(self, queued: QueuedTask, outcome: TaskOutcome) -> None:
        decision = self.retry.decide(queued.retries, outcome)
        if decision.retry:
            queued.retries += 1
            self._pending.appendleft(queued)
            await self._sleep(decision.delay)
            return
        if not queued.future.done():
            queued.future.set_exception(decision.error)

    def _notify(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:
            self.logger.warning("Task queue callback failed: %s", exc)


__all__ = ["TaskQueue", "QueuedTask", "Task"]
