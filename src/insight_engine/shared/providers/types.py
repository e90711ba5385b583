"""Core types for the insight provider resilience layer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class RetryConfig:
    """Bounded exponential backoff.

    Attributes:
        max_attempts:       Total attempts including the first call.
        initial_delay_ms:   Delay before the second attempt.
        max_delay_ms:       Upper bound for any single delay.
        backoff_multiplier: Growth factor between consecutive delays.
    """

    max_attempts: int = 3
    initial_delay_ms: float = 100.0
    max_delay_ms: float = 500.0
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Attributes:
    failure_threshold:      Consecutive failures before the circuit opens.
    reset_timeout_ms:       Time spent OPEN before half-open trials.
    half_open_max_attempts: Trial calls allowed (and successes required) in HALF_OPEN.
    """

    failure_threshold: int = 2
    reset_timeout_ms: float = 5000.0
    half_open_max_attempts: int = 2


@dataclass(frozen=True)
class EngineConfig:
    """Construction-time configuration for ``InsightOrchestrator``."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    cache_ttl: float = 3600.0
    max_metrics: int = 1000
    error_bucket_seconds: int = 60
    insight_log_size: int = 1000
    cost_per_ms: float = 0.001
    strict_metric_keys: bool = False


@dataclass(frozen=True)
class CircuitSnapshot:
    """Read-only view of a breaker."""

    provider_id: str
    state: CircuitState
    consecutive_failures: int
    opened_at: float | None
    half_open_attempts: int
    trip_count: int


@dataclass
class ProviderHealth:
    """Read-only snapshot of a provider's current health."""

    provider_id: str
    health_score: int = 100
    total_requests: int = 0
    total_successes: int = 0
    total_failures: int = 0
    consecutive_failures: int = 0
    success_rate: float = 1.0
    error_rate: float = 0.0
    average_latency_ms: float = 0.0
    last_error: str | None = None
    last_error_time: float | None = None
    circuit_state: str = CircuitState.CLOSED.value
