"""Adaptive requests-per-second ceiling with minimum dispatch spacing."""

from __future__ import annotations

import asyncio
import math
import re
import time
from typing import Awaitable, Callable

_INTERVAL_RE = re.compile(r"^(\d+)([smh])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}

MIN_RATE = 1.0


def parse_interval(interval: str) -> int:
    """Parse strings such as ``10s``, ``5m`` or ``1h`` into seconds.

    Anything that does not match the pattern counts as one second.
    """

    match = _INTERVAL_RE.match(interval.strip()) if isinstance(interval, str) else None
    if not match:
        return 1
    seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    return seconds or 1


def requests_per_second(requests_allowed: float, interval: str) -> float:
    """Convert a ``requests per interval`` allowance into a ceiling.

    Rounds down so the derived ceiling never exceeds what the service grants,
    and never drops below one request per second.
    """

    seconds = parse_interval(interval)
    return float(max(MIN_RATE, math.floor(float(requests_allowed) / seconds)))


class RateLimiter:
    """Tracks the current ceiling and spaces out dispatches accordingly.

    Only the task queue's single processing loop calls into this object, so
    it keeps no lock of its own.
    """

    def __init__(
        self,
        requests_per_second: float = 1.0,
        *,
        refresh_interval: int = 10,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rate = MIN_RATE
        self.set_rate(requests_per_second)
        self.refresh_interval = max(0, int(refresh_interval))
        self.requests_until_refresh = self.refresh_interval
        self._clock = clock
        self._sleep = sleep
        self._last_dispatch: float | None = None

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def min_interval(self) -> float:
        """Minimum number of seconds between two dispatches."""
        return 1.0 / self._rate

    @property
    def last_dispatch(self) -> float | None:
        return self._last_dispatch

    def set_rate(self, requests_per_second: float) -> float:
        self._rate = max(MIN_RATE, float(requests_per_second))
        return self._rate

    async def acquire(self) -> None:
        if self._last_dispatch is not None:
            wait = self.min_interval - (self._clock() - self._last_dispatch)
            if wait > 0:
                await self._sleep(wait)
        self._last_dispatch = self._clock()

    # -- refresh countdown ---------------------------------------------
    def record_attempt(self) -> None:
        if self.refresh_interval > 0:
            self.requests_until_refresh -= 1

    @property
    def refresh_due(self) -> bool:
        return self.refresh_interval > 0 and self.requests_until_refresh <= 0

    def reset_refresh_countdown(self) -> None:
        self.requests_until_refresh = self.refresh_interval


__all__ = ["RateLimiter", "parse_interval", "requests_per_second", "MIN_RATE"]
