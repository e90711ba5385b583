"""Data Transfer Objects — Pydantic models for API boundaries.

DTOs handle serialisation, validation, and documentation. They adapt
between the external world and the domain dataclasses.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from insight_engine.adapters.outbound.cache import CacheStats
from insight_engine.domain.entities import HealthInsight, InsightRequest, PersonaProfile
from insight_engine.domain.enums import InsightCategory
from insight_engine.shared.observability.telemetry import (
    ErrorStats,
    ProviderComparison,
    TelemetrySnapshot,
    UsagePatterns,
)
from insight_engine.shared.providers.types import ProviderHealth


# ═══════════════════════════════════════════════════════════════
#  Common
# ═══════════════════════════════════════════════════════════════
class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | None = None  # type: ignore[type-arg]


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "development"
    providers: dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Insights
# ═══════════════════════════════════════════════════════════════
class PersonaBody(BaseModel):
    id: str = Field(..., min_length=1, max_length=128)
    age: int | None = Field(None, ge=0, le=150)
    gender: str | None = None
    conditions: list[str] = Field(default_factory=list)
    activity_level: str | None = None
    country: str | None = None
    language: str | None = None

    def to_domain(self) -> PersonaProfile:
        return PersonaProfile(
            id=self.id,
            age=self.age,
            gender=self.gender,
            conditions=tuple(self.conditions),
            activity_level=self.activity_level,
            country=self.country,
            language=self.language,
        )


class InsightRequestBody(BaseModel):
    category: InsightCategory
    # Emptiness is a domain rule, enforced by the orchestrator
    metrics: dict[str, float]
    persona: PersonaBody | None = None
    timeout_s: float | None = Field(None, gt=0, le=300)

    def to_domain(self) -> InsightRequest:
        return InsightRequest(
            category=self.category,
            metrics=self.metrics,
            persona=self.persona.to_domain() if self.persona else None,
        )


class InsightActionResponse(BaseModel):
    type: str
    message: str


class InsightResponse(BaseModel):
    id: str
    category: str
    type: str
    message: str
    related_metrics: list[str]
    date: datetime
    action: InsightActionResponse | None = None
    source: str | None = None

    @classmethod
    def from_domain(cls, insight: HealthInsight) -> InsightResponse:
        return cls(
            id=insight.id,
            category=insight.category.value,
            type=insight.type.value,
            message=insight.message,
            related_metrics=list(insight.related_metrics),
            date=insight.date,
            action=(
                InsightActionResponse(type=insight.action.type.value, message=insight.action.message)
                if insight.action
                else None
            ),
            source=insight.source,
        )


# ═══════════════════════════════════════════════════════════════
#  Telemetry
# ═══════════════════════════════════════════════════════════════
class CacheStatsResponse(BaseModel):
    hits: int
    misses: int
    size: int
    evictions: int
    expirations: int
    hit_rate: float

    @classmethod
    def from_domain(cls, stats: CacheStats) -> CacheStatsResponse:
        return cls(
            hits=stats.hits,
            misses=stats.misses,
            size=stats.size,
            evictions=stats.evictions,
            expirations=stats.expirations,
            hit_rate=round(stats.hit_rate, 4),
        )


class ProviderHealthResponse(BaseModel):
    provider_id: str
    health_score: int
    total_requests: int
    total_successes: int
    total_failures: int
    consecutive_failures: int
    success_rate: float
    error_rate: float
    average_latency_ms: float
    last_error: str | None
    circuit_state: str

    @classmethod
    def from_domain(cls, h: ProviderHealth) -> ProviderHealthResponse:
        return cls(
            provider_id=h.provider_id,
            health_score=h.health_score,
            total_requests=h.total_requests,
            total_successes=h.total_successes,
            total_failures=h.total_failures,
            consecutive_failures=h.consecutive_failures,
            success_rate=h.success_rate,
            error_rate=h.error_rate,
            average_latency_ms=h.average_latency_ms,
            last_error=h.last_error,
            circuit_state=h.circuit_state,
        )


class ErrorBucketResponse(BaseModel):
    timestamp: int
    count: int


class ErrorStatsResponse(BaseModel):
    timeline: list[ErrorBucketResponse]

    @classmethod
    def from_domain(cls, stats: ErrorStats) -> ErrorStatsResponse:
        return cls(
            timeline=[ErrorBucketResponse(timestamp=b.timestamp, count=b.count) for b in stats.timeline]
        )


class UsagePatternsResponse(BaseModel):
    popular_categories: list[str]
    time_distribution: dict[str, int]

    @classmethod
    def from_domain(cls, usage: UsagePatterns) -> UsagePatternsResponse:
        return cls(
            popular_categories=usage.popular_categories,
            time_distribution=usage.time_distribution,
        )


class ProviderComparisonResponse(BaseModel):
    cost_comparison: dict[str, float]
    performance_comparison: dict[str, dict[str, float]]

    @classmethod
    def from_domain(cls, comparison: ProviderComparison) -> ProviderComparisonResponse:
        return cls(
            cost_comparison=comparison.cost_comparison,
            performance_comparison=comparison.performance_comparison,
        )


class ProviderTelemetryResponse(BaseModel):
    health: int
    latency: float
    error_rate: float
    circuit_state: str


class TelemetrySnapshotResponse(BaseModel):
    total_generated: int
    average_latency_ms: float
    cache_hit_rate: float
    total_errors: int
    providers: dict[str, ProviderTelemetryResponse]
    cache: CacheStatsResponse | None

    @classmethod
    def from_domain(cls, snap: TelemetrySnapshot) -> TelemetrySnapshotResponse:
        return cls(
            total_generated=snap.total_generated,
            average_latency_ms=snap.average_latency_ms,
            cache_hit_rate=snap.cache_hit_rate,
            total_errors=snap.total_errors,
            providers={
                name: ProviderTelemetryResponse(
                    health=p.health,
                    latency=p.latency,
                    error_rate=p.error_rate,
                    circuit_state=p.circuit_state,
                )
                for name, p in snap.providers.items()
            },
            cache=CacheStatsResponse.from_domain(snap.cache) if snap.cache else None,
        )
