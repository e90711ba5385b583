"""Telemetry aggregation for insight generation.

Owns the bounded insight log and the bucketed error timeline; everything
else is read from the health tracker, the cache and the breakers when a
snapshot is requested. Snapshots are always recomputed and never mutate
the underlying counters.
"""

from __future__ import annotations

import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Mapping

from insight_engine.adapters.outbound.cache import CacheStats, ResponseCache
from insight_engine.domain.entities import HealthInsight
from insight_engine.shared.providers.circuit_breaker import CircuitBreaker
from insight_engine.shared.providers.health import ProviderHealthTracker


@dataclass(frozen=True)
class ErrorBucket:
    timestamp: int  # bucket start, epoch milliseconds
    count: int


@dataclass(frozen=True)
class ErrorStats:
    timeline: list[ErrorBucket]

    @property
    def total(self) -> int:
        return sum(b.count for b in self.timeline)


@dataclass(frozen=True)
class UsagePatterns:
    popular_categories: list[str]
    time_distribution: dict[str, int]


@dataclass(frozen=True)
class ProviderComparison:
    cost_comparison: dict[str, float]
    performance_comparison: dict[str, dict[str, float]]


@dataclass(frozen=True)
class ProviderTelemetry:
    health: int
    latency: float
    error_rate: float
    circuit_state: str


@dataclass(frozen=True)
class TelemetrySnapshot:
    total_generated: int
    average_latency_ms: float
    cache_hit_rate: float
    total_errors: int
    providers: dict[str, ProviderTelemetry] = field(default_factory=dict)
    cache: CacheStats | None = None


class TelemetryAggregator:
    """Accumulates insight/error history and derives read-only views."""

    def __init__(
        self,
        *,
        health: ProviderHealthTracker,
        cache: ResponseCache,
        breakers: Mapping[str, CircuitBreaker] | None = None,
        insight_log_size: int = 1000,
        error_bucket_seconds: int = 60,
        cost_per_ms: float = 0.001,
    ) -> None:
        self._health = health
        self._cache = cache
        self._breakers = breakers or {}
        self._bucket_ms = error_bucket_seconds * 1000
        self._cost_per_ms = cost_per_ms

        self._insights: deque[HealthInsight] = deque(maxlen=insight_log_size)
        self._errors: dict[int, int] = {}
        self._total_generated = 0
        self._total_latency_ms = 0.0
        self._lock = threading.Lock()

    # ── Recording ────────────────────────────────────────────
    def record_insight(self, insight: HealthInsight, latency_ms: float) -> None:
        with self._lock:
            self._insights.append(insight)
            self._total_generated += 1
            self._total_latency_ms += latency_ms

    def record_error(self, at: float | None = None) -> None:
        """Count one failed top-level call in the bucket covering ``at`` (epoch seconds)."""
        now_ms = int((time.time() if at is None else at) * 1000)
        bucket = now_ms - (now_ms % self._bucket_ms)
        with self._lock:
            self._errors[bucket] = self._errors.get(bucket, 0) + 1

    # ── Views ────────────────────────────────────────────────
    def error_stats(self) -> ErrorStats:
        with self._lock:
            timeline = [ErrorBucket(timestamp=ts, count=n) for ts, n in sorted(self._errors.items())]
        return ErrorStats(timeline=timeline)

    def usage_patterns(self) -> UsagePatterns:
        with self._lock:
            insights = list(self._insights)

        categories = Counter(i.category.value for i in insights)
        hours = Counter(f"{i.date.hour:02d}" for i in insights)
        return UsagePatterns(
            popular_categories=[c for c, _ in categories.most_common()],
            time_distribution=dict(sorted(hours.items())),
        )

    def provider_comparison(self) -> ProviderComparison:
        """Latency/reliability per provider.

        ``cost_comparison`` is ``avg_latency_ms * cost_per_ms``: a rough
        approximation for relative comparison, not billing data.
        """
        performance = self._health.comparison()
        cost = {
            name: round(stats["latency"] * self._cost_per_ms, 6)
            for name, stats in performance.items()
        }
        return ProviderComparison(cost_comparison=cost, performance_comparison=performance)

    def snapshot(self) -> TelemetrySnapshot:
        cache_stats = self._cache.stats()
        errors = self.error_stats()

        providers: dict[str, ProviderTelemetry] = {}
        for name in self._health.providers():
            h = self._health.health(name)
            breaker = self._breakers.get(name)
            providers[name] = ProviderTelemetry(
                health=h.health_score,
                latency=h.average_latency_ms,
                error_rate=h.error_rate,
                circuit_state=breaker.state.value if breaker else h.circuit_state,
            )

        with self._lock:
            total = self._total_generated
            avg = self._total_latency_ms / total if total else 0.0

        return TelemetrySnapshot(
            total_generated=total,
            average_latency_ms=round(avg, 2),
            cache_hit_rate=round(cache_stats.hit_rate, 4),
            total_errors=errors.total,
            providers=providers,
            cache=cache_stats,
        )
