"""Retry policy — bounded exponential backoff around a single provider call."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from insight_engine.domain.exceptions import (
    CircuitOpenError,
    RetryExhaustedError,
    TransientProviderError,
)
from insight_engine.shared.observability.metrics import PROVIDER_RETRIES
from insight_engine.shared.providers.types import RetryConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def is_retryable(exc: BaseException) -> bool:
    """Transient failures only: timeouts, 5xx-equivalents, network errors."""
    if isinstance(exc, CircuitOpenError):
        return False
    return isinstance(exc, (TransientProviderError, TimeoutError, ConnectionError))


class RetryPolicy:
    """Attempts a call up to ``max_attempts`` times.

    Delay before attempt *n* (n >= 2) is
    ``min(initial_delay_ms * backoff_multiplier ** (n - 2), max_delay_ms)``.
    Waiting uses ``asyncio.sleep`` so only the retrying call is suspended.
    """

    def __init__(self, config: RetryConfig | None = None, *, sleep: Sleep = asyncio.sleep) -> None:
        self._config = config or RetryConfig()
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Backoff in milliseconds before ``attempt`` (1-based; attempt 1 has none)."""
        if attempt < 2:
            return 0.0
        cfg = self._config
        delay = cfg.initial_delay_ms * (cfg.backoff_multiplier ** (attempt - 2))
        return min(delay, cfg.max_delay_ms)

    def _retrying(self) -> AsyncRetrying:
        cfg = self._config
        return AsyncRetrying(
            stop=stop_after_attempt(cfg.max_attempts),
            wait=wait_exponential(
                multiplier=cfg.initial_delay_ms / 1000.0,
                exp_base=cfg.backoff_multiplier,
                max=cfg.max_delay_ms / 1000.0,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=self._before_sleep,
            sleep=self._sleep,
        )

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        PROVIDER_RETRIES.inc()
        logger.info(
            "retry_scheduled",
            next_attempt=retry_state.attempt_number + 1,
            delay_ms=self.delay_for_attempt(retry_state.attempt_number + 1),
            error=f"{type(exc).__name__}: {exc}",
        )

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` with retries.

        ``fn`` is any zero-argument callable returning an awaitable; each
        attempt calls it afresh.

        Raises:
            CircuitOpenError: immediately, without consuming an attempt.
            RetryExhaustedError: every attempt failed transiently.
            Exception: any non-retryable error, unchanged, on first sight.
        """
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await fn()
        except RetryError as exc:
            last_attempt = exc.last_attempt
            last_error = last_attempt.exception() or exc
            logger.warning(
                "retry_exhausted",
                attempts=last_attempt.attempt_number,
                error=f"{type(last_error).__name__}: {last_error}",
            )
            raise RetryExhaustedError(last_error, last_attempt.attempt_number) from last_error
        raise RuntimeError("retry loop ended without an outcome")
