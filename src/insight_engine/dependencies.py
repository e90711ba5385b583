"""Dependency wiring — builds the orchestrator and hands it to route handlers.

The orchestrator is constructed once by ``create_app`` and stored on
``app.state``; handlers receive it through FastAPI's ``Depends()``.
"""

from __future__ import annotations

from fastapi import Request

from insight_engine.adapters.outbound.llm import build_providers
from insight_engine.application.orchestrator import InsightOrchestrator
from insight_engine.config import Settings


def build_orchestrator(settings: Settings) -> InsightOrchestrator:
    providers = build_providers(
        provider_names=settings.provider_names,
        base_url=settings.provider_base_url,
        api_key=settings.provider_api_key,
        timeout_s=settings.provider_timeout_seconds,
    )
    return InsightOrchestrator(providers, settings.to_engine_config())


def get_orchestrator(request: Request) -> InsightOrchestrator:
    return request.app.state.orchestrator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
