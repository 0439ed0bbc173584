from __future__ import annotations

import asyncio

from lexideck.core.graceful_shutdown import GracefulShutdown


def test_first_trigger_reason_wins() -> None:
    async def scenario() -> GracefulShutdown:
        shutdown = GracefulShutdown()
        shutdown.trigger("idle")
        shutdown.trigger("error")
        return shutdown

    shutdown = asyncio.run(scenario())

    assert shutdown.is_triggered()
    assert shutdown.reason == "idle"


def test_wait_times_out_without_trigger() -> None:
    async def scenario() -> tuple[bool, bool]:
        shutdown = GracefulShutdown()
        before = await shutdown.wait(0.01)
        asyncio.get_running_loop().call_soon(shutdown.trigger)
        after = await shutdown.wait(1.0)
        return before, after

    assert asyncio.run(scenario()) == (False, True)
