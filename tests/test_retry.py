from __future__ import annotations

import pytest

from lexideck.core.outcomes import OTHER, RATE_LIMIT, Other, RateLimited, Success, failure_kind
from lexideck.core.retry import RetryConfig, RetryCoordinator
from lexideck.errors import RateLimitedError, RetriesExhaustedError


def test_backoff_doubles_until_capped() -> None:
    coordinator = RetryCoordinator()
    assert [coordinator.backoff_for(n) for n in range(8)] == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]


def test_rate_limited_outcome_is_retried_with_backoff() -> None:
    coordinator = RetryCoordinator(RetryConfig(max_retries=3, min_backoff=0.5, max_backoff=10.0))
    decision = coordinator.decide(2, RateLimited(RateLimitedError("slow down")))
    assert decision.retry
    assert decision.delay == 2.0
    assert decision.error is None


def test_exhausted_retries_produce_descriptive_error() -> None:
    coordinator = RetryCoordinator(RetryConfig(max_retries=5))
    decision = coordinator.decide(5, RateLimited(RateLimitedError("slow down")))
    assert not decision.retry
    assert isinstance(decision.error, RetriesExhaustedError)
    assert str(decision.error) == "Failed after 5 retries: slow down"


def test_other_failures_are_never_retried() -> None:
    error = ValueError("boom")
    decision = RetryCoordinator().decide(0, Other(error))
    assert not decision.retry
    assert decision.error is error


def test_success_is_not_a_failure() -> None:
    with pytest.raises(TypeError):
        RetryCoordinator().decide(0, Success(1))


def test_failure_kind_labels() -> None:
    assert failure_kind(RateLimited(RateLimitedError())) == RATE_LIMIT
    assert failure_kind(Other(ValueError())) == OTHER
