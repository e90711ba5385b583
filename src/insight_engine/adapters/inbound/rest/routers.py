"""REST API routers — thin request/response layer over the orchestrator."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from insight_engine import __version__
from insight_engine.application.dtos import (
    CacheStatsResponse,
    ErrorStatsResponse,
    HealthResponse,
    InsightRequestBody,
    InsightResponse,
    ProviderComparisonResponse,
    ProviderHealthResponse,
    TelemetrySnapshotResponse,
    UsagePatternsResponse,
)
from insight_engine.application.orchestrator import InsightOrchestrator
from insight_engine.config import Settings
from insight_engine.dependencies import get_app_settings, get_orchestrator

# ═══════════════════════════════════════════════════════════════
#  Health / metrics
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check(
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    circuits = {name: h.circuit_state for name, h in orchestrator.get_provider_health().items()}
    degraded = bool(circuits) and all(state == "open" for state in circuits.values())
    return HealthResponse(
        status="degraded" if degraded else "ok",
        version=__version__,
        environment=settings.app_env.value,
        providers=circuits,
    )


@health_router.get("/metrics")
async def prometheus_metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# ═══════════════════════════════════════════════════════════════
#  Insights
# ═══════════════════════════════════════════════════════════════
insights_router = APIRouter(prefix="/insights", tags=["Insights"])


@insights_router.post("", response_model=InsightResponse)
async def generate_insight(
    body: InsightRequestBody,
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> InsightResponse:
    insight = await orchestrator.generate_insight(body.to_domain(), timeout_s=body.timeout_s)
    return InsightResponse.from_domain(insight)


@insights_router.post("/persona", response_model=InsightResponse)
async def generate_persona_insight(
    body: InsightRequestBody,
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> InsightResponse:
    insight = await orchestrator.generate_insight_for_persona(
        body.to_domain(), timeout_s=body.timeout_s
    )
    return InsightResponse.from_domain(insight)


# ═══════════════════════════════════════════════════════════════
#  Telemetry
# ═══════════════════════════════════════════════════════════════
telemetry_router = APIRouter(prefix="/telemetry", tags=["Telemetry"])


@telemetry_router.get("/snapshot", response_model=TelemetrySnapshotResponse)
async def telemetry_snapshot(
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> TelemetrySnapshotResponse:
    return TelemetrySnapshotResponse.from_domain(orchestrator.get_telemetry_snapshot())


@telemetry_router.get("/cache", response_model=CacheStatsResponse)
async def cache_stats(
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> CacheStatsResponse:
    return CacheStatsResponse.from_domain(orchestrator.get_cache_stats())


@telemetry_router.get("/errors", response_model=ErrorStatsResponse)
async def error_stats(
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> ErrorStatsResponse:
    return ErrorStatsResponse.from_domain(orchestrator.get_error_stats())


@telemetry_router.get("/usage", response_model=UsagePatternsResponse)
async def usage_patterns(
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> UsagePatternsResponse:
    return UsagePatternsResponse.from_domain(orchestrator.get_usage_patterns())


# ═══════════════════════════════════════════════════════════════
#  Providers
# ═══════════════════════════════════════════════════════════════
providers_router = APIRouter(prefix="/providers", tags=["Provider Health"])


@providers_router.get("/health", response_model=list[ProviderHealthResponse])
async def provider_health(
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> list[ProviderHealthResponse]:
    """Get health snapshots for all configured insight providers."""
    return [ProviderHealthResponse.from_domain(h) for h in orchestrator.get_provider_health().values()]


@providers_router.get("/comparison", response_model=ProviderComparisonResponse)
async def provider_comparison(
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> ProviderComparisonResponse:
    return ProviderComparisonResponse.from_domain(orchestrator.get_provider_comparison())


@providers_router.post("/{provider_id}/reset")
async def reset_provider(
    provider_id: str,
    orchestrator: InsightOrchestrator = Depends(get_orchestrator),
) -> dict[str, str]:
    """Admin: force a provider's circuit breaker back to closed."""
    if provider_id not in orchestrator.providers:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider {provider_id!r}"
        )
    orchestrator.reset_provider(provider_id)
    return {"status": "reset", "provider_id": provider_id}
