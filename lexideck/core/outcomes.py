"""Tagged results reported by tasks executed through the task queue."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class RateLimited:
    """The remote side throttled the call; eligible for backoff and retry."""

    error: BaseException


@dataclass(frozen=True)
class Other:
    """Any other failure; never retried by the queue."""

    error: BaseException


TaskOutcome = Union[Success, RateLimited, Other]

RATE_LIMIT = "rate-limit"
OTHER = "other"


def failure_kind(outcome: TaskOutcome) -> str:
    if isinstance(outcome, RateLimited):
        return RATE_LIMIT
    if isinstance(outcome, Other):
        return OTHER
    raise TypeError(f"{outcome!r} is not a failure outcome")


__all__ = ["Success", "RateLimited", "Other", "TaskOutcome", "RATE_LIMIT", "OTHER", "failure_kind"]
