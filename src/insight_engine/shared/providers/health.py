"""Rolling health statistics for every provider.

Keeps cumulative success/failure counters plus the last 100 outcomes and
latency samples per provider. Pure bookkeeping: nothing here raises.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field

from insight_engine.shared.providers.types import ProviderHealth

SAMPLE_CAPACITY = 100

# Health score weights: recent success rate dominates, latency refines.
SUCCESS_WEIGHT = 0.7
LATENCY_WEIGHT = 0.3
# Average latency at (or beyond) which the latency component scores zero.
WORST_ACCEPTABLE_LATENCY_MS = 5000.0


@dataclass
class _ProviderRecord:
    success_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    latency_samples: deque[float] = field(default_factory=lambda: deque(maxlen=SAMPLE_CAPACITY))
    outcomes: deque[bool] = field(default_factory=lambda: deque(maxlen=SAMPLE_CAPACITY))
    last_error: str | None = None
    last_error_time: float | None = None

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def average_latency(self) -> float:
        if not self.latency_samples:
            return 0.0
        return sum(self.latency_samples) / len(self.latency_samples)


class ProviderHealthTracker:
    """Thread-safe health tracker keyed by provider name.

    Unknown providers are lazily initialised to a zero-state record.
    """

    def __init__(self, providers: list[str] | None = None) -> None:
        self._records: dict[str, _ProviderRecord] = {}
        self._lock = threading.Lock()
        for name in providers or []:
            self._records[name] = _ProviderRecord()

    # ── Recording ────────────────────────────────────────────
    def record_success(self, provider: str, latency_ms: float) -> None:
        with self._lock:
            rec = self._record(provider)
            rec.success_count += 1
            rec.consecutive_failures = 0
            rec.outcomes.append(True)
            rec.latency_samples.append(max(0.0, float(latency_ms)))

    def record_failure(
        self, provider: str, latency_ms: float | None, error: str | None = None
    ) -> None:
        """Count a failed call. ``latency_ms=None`` leaves the latency window untouched."""
        with self._lock:
            rec = self._record(provider)
            rec.failure_count += 1
            rec.consecutive_failures += 1
            rec.outcomes.append(False)
            if latency_ms is not None:
                rec.latency_samples.append(max(0.0, float(latency_ms)))
            if error is not None:
                rec.last_error = error
                rec.last_error_time = time.time()

    # ── Derivation ───────────────────────────────────────────
    def providers(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def health_score(self, provider: str) -> int:
        """0–100 score from the last 100 outcomes and average latency.

        ``score = 100 * (0.7 * success_rate + 0.3 * max(0, 1 - avg_ms / 5000))``
        """
        with self._lock:
            rec = self._record(provider)
            return self._score(rec)

    def comparison(self) -> dict[str, dict[str, float]]:
        """``{provider: {"latency": avg_ms, "reliability": success/(success+failure)}}``."""
        with self._lock:
            return {
                name: {
                    "latency": round(rec.average_latency, 2),
                    "reliability": rec.success_count / rec.total if rec.total else 1.0,
                }
                for name, rec in self._records.items()
            }

    def health(self, provider: str) -> ProviderHealth:
        """Produce a read-only health snapshot (circuit state filled in by the caller)."""
        with self._lock:
            rec = self._record(provider)
            success_rate = rec.success_count / rec.total if rec.total else 1.0
            return ProviderHealth(
                provider_id=provider,
                health_score=self._score(rec),
                total_requests=rec.total,
                total_successes=rec.success_count,
                total_failures=rec.failure_count,
                consecutive_failures=rec.consecutive_failures,
                success_rate=round(success_rate, 4),
                error_rate=round(1.0 - success_rate, 4),
                average_latency_ms=round(rec.average_latency, 2),
                last_error=rec.last_error,
                last_error_time=rec.last_error_time,
            )

    # ── Internals ────────────────────────────────────────────
    def _record(self, provider: str) -> _ProviderRecord:
        """Caller holds lock."""
        rec = self._records.get(provider)
        if rec is None:
            rec = self._records[provider] = _ProviderRecord()
        return rec

    @staticmethod
    def _score(rec: _ProviderRecord) -> int:
        if not rec.outcomes:
            return 100
        success_rate = sum(1 for ok in rec.outcomes if ok) / len(rec.outcomes)
        latency_score = max(0.0, 1.0 - rec.average_latency / WORST_ACCEPTABLE_LATENCY_MS)
        score = (SUCCESS_WEIGHT * success_rate + LATENCY_WEIGHT * latency_score) * 100
        return int(round(max(0.0, min(100.0, score))))
