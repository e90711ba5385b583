"""Provider resilience layer.

Retry with bounded backoff, per-provider circuit breaking, and rolling
health tracking for any insight provider.
"""

from insight_engine.shared.providers.types import (
    CircuitBreakerConfig,
    CircuitSnapshot,
    CircuitState,
    EngineConfig,
    ProviderHealth,
    RetryConfig,
)
from insight_engine.shared.providers.health import ProviderHealthTracker
from insight_engine.shared.providers.circuit_breaker import CircuitBreaker
from insight_engine.shared.providers.retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitSnapshot",
    "CircuitState",
    "EngineConfig",
    "ProviderHealth",
    "ProviderHealthTracker",
    "RetryConfig",
    "RetryPolicy",
]
