"""Tests for the chunk retry policy."""

import pytest

from client.retry import RetryPolicy
from common.exceptions import (
    ChunkDeliveryExhaustedError,
    InvalidConfigurationError,
    TransientTransportError,
)


def flaky(failures, result="ok"):
    """Attempt function that fails `failures` times, then returns result."""
    calls = []

    def attempt():
        calls.append(len(calls))
        if len(calls) <= failures:
            raise TransientTransportError(f"failure {len(calls)}", status_code=503)
        return result

    attempt.calls = calls
    return attempt


@pytest.mark.parametrize("failures", [0, 1, 2])
def test_succeeds_when_failures_below_limit(no_sleep, failures):
    policy = RetryPolicy(max_retries=3, sleep=no_sleep)
    attempt = flaky(failures)

    assert policy.execute(attempt, chunk_index=4) == "ok"
    assert len(attempt.calls) == failures + 1
    assert no_sleep.delays == [1.0, 2.0][:failures]


def test_backoff_doubles_between_attempts(no_sleep):
    policy = RetryPolicy(max_retries=5, sleep=no_sleep)

    policy.execute(flaky(4), chunk_index=0)

    assert no_sleep.delays == [1.0, 2.0, 4.0, 8.0]
    assert all(later == earlier * 2 for earlier, later in zip(no_sleep.delays, no_sleep.delays[1:]))


@pytest.mark.parametrize("failures", [3, 4, 10])
def test_exhausted_after_max_attempts(no_sleep, failures):
    policy = RetryPolicy(max_retries=3, sleep=no_sleep)
    attempt = flaky(failures)

    with pytest.raises(ChunkDeliveryExhaustedError) as exc_info:
        policy.execute(attempt, chunk_index=7)

    assert len(attempt.calls) == 3
    assert no_sleep.delays == [1.0, 2.0]
    assert exc_info.value.chunk_index == 7
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.__cause__, TransientTransportError)


def test_error_observer_called_once_on_exhaustion(no_sleep):
    seen = []
    policy = RetryPolicy(max_retries=2, on_error=lambda err, idx: seen.append((str(err), idx)), sleep=no_sleep)

    with pytest.raises(ChunkDeliveryExhaustedError):
        policy.execute(flaky(5), chunk_index=3)

    assert seen == [("failure 2", 3)]


def test_error_observer_not_called_on_success(no_sleep):
    seen = []
    policy = RetryPolicy(max_retries=3, on_error=lambda err, idx: seen.append(idx), sleep=no_sleep)

    policy.execute(flaky(2), chunk_index=0)

    assert seen == []


def test_retry_observer_sees_each_backoff(no_sleep):
    retries = []
    policy = RetryPolicy(max_retries=3, on_retry=lambda i, d: retries.append((i, d)), sleep=no_sleep)

    policy.execute(flaky(2), chunk_index=0)

    assert retries == [(0, 1.0), (1, 2.0)]


def test_single_attempt_policy_never_sleeps(no_sleep):
    policy = RetryPolicy(max_retries=1, sleep=no_sleep)

    with pytest.raises(ChunkDeliveryExhaustedError):
        policy.execute(flaky(1), chunk_index=0)

    assert no_sleep.delays == []


def test_non_transient_errors_are_not_retried(no_sleep):
    policy = RetryPolicy(max_retries=3, sleep=no_sleep)
    calls = []

    def attempt():
        calls.append(1)
        raise ValueError("bug")

    with pytest.raises(ValueError):
        policy.execute(attempt, chunk_index=0)

    assert len(calls) == 1
    assert no_sleep.delays == []


@pytest.mark.parametrize("max_retries", [0, -2, 2.5, None])
def test_invalid_retry_count_rejected(max_retries):
    with pytest.raises(InvalidConfigurationError):
        RetryPolicy(max_retries=max_retries)


def test_backoff_delay_schedule():
    assert [RetryPolicy.backoff_delay(i) for i in range(5)] == [1.0, 2.0, 4.0, 8.0, 16.0]
