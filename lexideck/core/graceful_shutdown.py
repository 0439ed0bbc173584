"""Signal-aware shutdown helper."""

from __future__ import annotations

import asyncio
import signal
from typing import Iterable


class GracefulShutdown:
    """Shared stop flag for workers, the monitor and signal handlers."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._installed = False
        self.reason: str | None = None

    def install(self, signals: Iterable[int] | None = None) -> None:
        if self._installed:
            return
        loop = asyncio.get_running_loop()
        self._installed = True
        targets = list(signals) if signals is not None else [signal.SIGINT, signal.SIGTERM]
        for sig in targets:
            try:
                loop.add_signal_handler(sig, self.trigger, f"signal {signal.Signals(sig).name}")
            except (NotImplementedError, RuntimeError):  # pragma: no cover - windows fallback
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.trigger, "signal"))

    def trigger(self, reason: str = "requested") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def event(self) -> asyncio.Event:
        return self._event

    def is_triggered(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait up to ``timeout`` seconds; returns whether shutdown was triggered."""

        if timeout is None:
            await self._event.wait()
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


__all__ = ["GracefulShutdown"]
