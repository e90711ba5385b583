"""Tests for the bounded exponential-backoff retry policy."""

from __future__ import annotations

import pytest

from insight_engine.domain.exceptions import (
    CircuitOpenError,
    FatalProviderError,
    RetryExhaustedError,
    TransientProviderError,
)
from insight_engine.shared.providers.circuit_breaker import CircuitBreaker
from insight_engine.shared.providers.retry import RetryPolicy, is_retryable
from insight_engine.shared.providers.types import RetryConfig
from tests.conftest import SleepRecorder


def _policy(sleep: SleepRecorder, max_attempts: int = 4) -> RetryPolicy:
    return RetryPolicy(
        RetryConfig(
            max_attempts=max_attempts,
            initial_delay_ms=100.0,
            max_delay_ms=500.0,
            backoff_multiplier=2.0,
        ),
        sleep=sleep,
    )


class _Flaky:
    def __init__(self, failures: list[BaseException]) -> None:
        self.failures = list(failures)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return "ok"


class TestBackoff:
    def test_delay_schedule(self) -> None:
        policy = _policy(SleepRecorder())
        assert policy.delay_for_attempt(1) == 0.0
        assert policy.delay_for_attempt(2) == 100.0
        assert policy.delay_for_attempt(3) == 200.0
        assert policy.delay_for_attempt(4) == 400.0

    def test_delay_is_capped(self) -> None:
        policy = _policy(SleepRecorder())
        assert policy.delay_for_attempt(5) == 500.0
        assert policy.delay_for_attempt(12) == 500.0


class TestExecute:
    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        sleep = SleepRecorder()
        fn = _Flaky([])
        assert await _policy(sleep).execute(fn) == "ok"
        assert fn.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_lambda_returning_awaitable_is_awaited(self) -> None:
        sleep = SleepRecorder()
        fn = _Flaky([TransientProviderError("p", "HTTP 503")])
        breaker = CircuitBreaker("p", failure_threshold=5)

        result = await _policy(sleep).execute(lambda: breaker.call(fn))

        assert result == "ok"
        assert fn.calls == 2
        assert breaker.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self) -> None:
        sleep = SleepRecorder()
        fn = _Flaky([TransientProviderError("p", "HTTP 503"), TimeoutError("slow")])
        assert await _policy(sleep).execute(fn) == "ok"
        assert fn.calls == 3
        assert sleep.delays == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_error(self) -> None:
        sleep = SleepRecorder()
        last = TransientProviderError("p", "HTTP 504")
        fn = _Flaky([ConnectionError("reset")] * 3 + [last])
        with pytest.raises(RetryExhaustedError) as exc_info:
            await _policy(sleep, max_attempts=4).execute(fn)
        assert exc_info.value.attempts == 4
        assert exc_info.value.last_error is last
        assert sleep.delays == [0.1, 0.2, 0.4]

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self) -> None:
        sleep = SleepRecorder()
        fn = _Flaky([FatalProviderError("p", "HTTP 400", status_code=400)])
        with pytest.raises(FatalProviderError):
            await _policy(sleep).execute(fn)
        assert fn.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_circuit_open_propagates_immediately(self) -> None:
        sleep = SleepRecorder()
        fn = _Flaky([TransientProviderError("p", "HTTP 503"), CircuitOpenError("p")])
        with pytest.raises(CircuitOpenError):
            await _policy(sleep).execute(fn)
        assert fn.calls == 2
        assert sleep.delays == [0.1]


def test_is_retryable() -> None:
    assert is_retryable(TransientProviderError("p", "x"))
    assert is_retryable(TimeoutError())
    assert is_retryable(ConnectionError())
    assert not is_retryable(CircuitOpenError("p"))
    assert not is_retryable(FatalProviderError("p", "x"))
    assert not is_retryable(ValueError("bad"))
