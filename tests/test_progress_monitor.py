from __future__ import annotations

import asyncio
from pathlib import Path

from lexideck.core.graceful_shutdown import GracefulShutdown
from lexideck.core.job_queue import JobQueue
from lexideck.core.progress_monitor import MonitorState, ProgressMonitor, has_pending_work, summarize

IDLE_COUNTS = {"active": 0, "waiting": 0, "delayed": 0, "paused": 0, "completed": 4, "failed": 1}


def busy(**counts):
    return {**IDLE_COUNTS, **counts}


def make_monitor(logger, **kwargs) -> ProgressMonitor:
    return ProgressMonitor({}, shutdown=GracefulShutdown(), logger=logger, **kwargs)


def test_summarize_orders_statuses_and_skips_zeroes() -> None:
    progress = summarize({"completed": 3, "waiting": 1, "failed": 0})
    assert progress.total == 4
    assert progress.completed == 3
    assert progress.tally == "waiting=1 completed=3"


def test_has_pending_work() -> None:
    assert not has_pending_work(IDLE_COUNTS)
    assert has_pending_work(busy(delayed=1))
    assert has_pending_work(busy(paused=2))


def test_idle_requires_a_full_grace_period(logger) -> None:
    monitor = make_monitor(logger, grace_period=5.0)

    assert monitor.observe({"audio": IDLE_COUNTS}, 0.0) is MonitorState.PENDING_IDLE
    assert monitor.observe({"audio": IDLE_COUNTS}, 4.9) is MonitorState.PENDING_IDLE
    assert monitor.observe({"audio": IDLE_COUNTS}, 5.0) is MonitorState.IDLE


def test_new_work_resets_the_idle_timer(logger) -> None:
    monitor = make_monitor(logger, grace_period=5.0)

    monitor.observe({"audio": IDLE_COUNTS}, 0.0)
    assert monitor.observe({"audio": busy(waiting=1)}, 4.0) is MonitorState.ACTIVE
    assert monitor.idle_since is None
    assert monitor.observe({"audio": IDLE_COUNTS}, 6.0) is MonitorState.PENDING_IDLE
    assert monitor.observe({"audio": IDLE_COUNTS}, 10.0) is MonitorState.PENDING_IDLE
    assert monitor.observe({"audio": IDLE_COUNTS}, 11.0) is MonitorState.IDLE


def test_any_busy_queue_keeps_monitor_active(logger) -> None:
    monitor = make_monitor(logger, grace_period=0.0)
    state = monitor.observe({"translation": IDLE_COUNTS, "audio": busy(active=1)}, 100.0)
    assert state is MonitorState.ACTIVE


def test_idle_state_is_terminal(logger) -> None:
    monitor = make_monitor(logger, grace_period=0.0)
    assert monitor.observe({"audio": IDLE_COUNTS}, 0.0) is MonitorState.IDLE
    assert monitor.observe({"audio": busy(waiting=3)}, 1.0) is MonitorState.IDLE


def test_run_triggers_shutdown_once_queues_are_idle(tmp_path: Path, logger, clock) -> None:
    queue = JobQueue(tmp_path / "jobs.db", "audio", logger=logger)
    queue.initialize()
    queue.mark_completed(queue.add_job("synthesize", {"text": "a"}))

    async def scenario():
        shutdown = GracefulShutdown()
        monitor = ProgressMonitor(
            {"audio": queue},
            shutdown=shutdown,
            logger=logger,
            interval=0.01,
            grace_period=0.0,
            clock=clock,
        )
        state = await monitor.run()
        return state, shutdown

    state, shutdown = asyncio.run(scenario())
    assert state is MonitorState.IDLE
    assert shutdown.is_triggered()
    assert shutdown.reason == "idle"
