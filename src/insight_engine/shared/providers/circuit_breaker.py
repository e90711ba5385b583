"""Circuit breaker — stops calling a provider that keeps failing.

State machine:
    CLOSED    → (N consecutive failures)            → OPEN
    OPEN      → (reset timeout expires)             → HALF_OPEN
    HALF_OPEN → (half_open_max_attempts successes)  → CLOSED
    HALF_OPEN → (any trial fails)                   → OPEN

Every transition happens under the breaker's lock, so concurrent trial
calls cannot flip the circuit in contradictory directions.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Awaitable, Callable, TypeVar

import structlog

from insight_engine.domain.exceptions import CircuitOpenError, FatalProviderError, ValidationError
from insight_engine.shared.observability.metrics import CIRCUIT_TRANSITIONS
from insight_engine.shared.providers.types import CircuitSnapshot, CircuitState

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def counts_as_failure(exc: BaseException) -> bool:
    """Whether an exception should count against the breaker."""
    if isinstance(exc, (ValidationError, CircuitOpenError, asyncio.CancelledError)):
        return False
    if isinstance(exc, FatalProviderError) and exc.is_request_rejection:
        return False
    return True


class CircuitBreaker:
    """Per-provider circuit breaker with bounded half-open trials."""

    def __init__(
        self,
        provider_id: str,
        *,
        failure_threshold: int = 2,
        reset_timeout_ms: float = 5000.0,
        half_open_max_attempts: int = 2,
    ) -> None:
        self._provider_id = provider_id
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout_ms / 1000.0
        self._half_open_max = half_open_max_attempts

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._half_open_attempts = 0
        self._half_open_successes = 0
        self._trip_count = 0
        self._lock = threading.Lock()

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_transition_to_half_open()
            return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def is_open(self) -> bool:
        """True while calls would be rejected without reaching the provider."""
        return self.state == CircuitState.OPEN

    def retry_after(self) -> float:
        """Seconds until an OPEN circuit admits trial calls (0 when not open)."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            return max(0.0, self._reset_timeout - (time.monotonic() - self._opened_at))

    # ── Gatekeeping ──────────────────────────────────────────
    def can_execute(self) -> bool:
        """Whether ``acquire`` would currently admit a call (no slot is taken)."""
        with self._lock:
            self._maybe_transition_to_half_open()
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN:
                return self._half_open_attempts < self._half_open_max
            return False

    def acquire(self) -> None:
        """Admit one call or raise ``CircuitOpenError``.

        In HALF_OPEN at most ``half_open_max_attempts`` trials are admitted;
        each admitted call must be settled with ``record_success``,
        ``record_failure`` or ``release``.
        """
        with self._lock:
            self._maybe_transition_to_half_open()

            if self._state == CircuitState.CLOSED:
                return

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_attempts < self._half_open_max:
                    self._half_open_attempts += 1
                    return
                raise CircuitOpenError(self._provider_id)

            remaining = 0.0
            if self._opened_at is not None:
                remaining = max(0.0, self._reset_timeout - (time.monotonic() - self._opened_at))
            raise CircuitOpenError(self._provider_id, retry_after_s=remaining)

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` through the breaker."""
        self.acquire()
        try:
            result = await fn()
        except BaseException as exc:
            if counts_as_failure(exc):
                self.record_failure()
            else:
                self.release()
            raise
        self.record_success()
        return result

    # ── Outcome recording ────────────────────────────────────
    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self._half_open_max:
                    self._transition(CircuitState.CLOSED)
                return
            if self._state == CircuitState.OPEN:
                # Late result from a call admitted before the trip
                return
            self._consecutive_failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1

            if self._state == CircuitState.HALF_OPEN:
                # Trial failed: back to OPEN with a fresh timer
                self._transition(CircuitState.OPEN)
                logger.warning(
                    "circuit_breaker_reopened",
                    provider=self._provider_id,
                    failures=self._consecutive_failures,
                )
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self._failure_threshold
            ):
                self._transition(CircuitState.OPEN)
                logger.warning(
                    "circuit_breaker_opened",
                    provider=self._provider_id,
                    failures=self._consecutive_failures,
                    reset_timeout_s=self._reset_timeout,
                )

    def release(self) -> None:
        """Settle an admitted call whose outcome says nothing about the provider."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._half_open_attempts > 0:
                self._half_open_attempts -= 1

    def reset(self) -> None:
        """Force-reset the circuit to CLOSED (for admin override)."""
        with self._lock:
            self._transition(CircuitState.CLOSED)
            logger.info("circuit_breaker_force_reset", provider=self._provider_id)

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            self._maybe_transition_to_half_open()
            return CircuitSnapshot(
                provider_id=self._provider_id,
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                opened_at=self._opened_at,
                half_open_attempts=self._half_open_attempts,
                trip_count=self._trip_count,
            )

    # ── Internals ────────────────────────────────────────────
    def _transition(self, target: CircuitState) -> None:
        """Caller must hold lock."""
        prev = self._state
        self._state = target
        self._half_open_attempts = 0
        self._half_open_successes = 0

        if target == CircuitState.OPEN:
            self._opened_at = time.monotonic()
            self._trip_count += 1
        elif target == CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._opened_at = None
            if prev != CircuitState.CLOSED:
                logger.info(
                    "circuit_breaker_closed",
                    provider=self._provider_id,
                    previous_state=prev.value,
                )

        if prev != target:
            CIRCUIT_TRANSITIONS.labels(provider=self._provider_id, to_state=target.value).inc()

    def _maybe_transition_to_half_open(self) -> None:
        """Caller must hold lock."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            elapsed = time.monotonic() - self._opened_at
            if elapsed >= self._reset_timeout:
                self._transition(CircuitState.HALF_OPEN)
                logger.info(
                    "circuit_breaker_half_open",
                    provider=self._provider_id,
                    elapsed_s=round(elapsed, 1),
                )
