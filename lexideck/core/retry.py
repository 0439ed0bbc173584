"""Failure classification and exponential backoff for queued tasks."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import RetriesExhaustedError
from ..logging_utils import get_logger
from .outcomes import Other, RateLimited, TaskOutcome


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 5
    min_backoff: float = 1.0
    max_backoff: float = 60.0


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0
    error: BaseException | None = None


class RetryCoordinator:
    def __init__(self, config: RetryConfig | None = None, *, logger: logging.Logger | None = None) -> None:
        self.config = config or RetryConfig()
        self.logger = logger or get_logger("scheduler")

    def backoff_for(self, retries: int) -> float:
        delay = self.config.min_backoff * (2 ** max(0, retries))
        return float(min(self.config.max_backoff, delay))

    def decide(self, retries: int, outcome: TaskOutcome) -> RetryDecision:
        if isinstance(outcome, RateLimited):
            if retries < self.config.max_retries:
                delay = self.backoff_for(retries)
                self.logger.warning(
                    "Rate limit hit. Retrying in %.2fs (retry %d/%d)",
                    delay,
                    retries + 1,
                    self.config.max_retries,
                )
                return RetryDecision(retry=True, delay=delay)
            return RetryDecision(
                retry=False,
                error=RetriesExhaustedError(self.config.max_retries, outcome.error),
            )
        if isinstance(outcome, Other):
            return RetryDecision(retry=False, error=outcome.error)
        raise TypeError(f"Cannot decide a retry for {outcome!r}")


__all__ = ["RetryConfig", "RetryDecision", "RetryCoordinator"]
