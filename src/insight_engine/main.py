"""FastAPI application entry-point.

Assembles routers, middleware, exception handlers, and lifecycle hooks.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from insight_engine import __version__
from insight_engine.adapters.inbound.rest.routers import (
    health_router,
    insights_router,
    providers_router,
    telemetry_router,
)
from insight_engine.application.orchestrator import InsightOrchestrator
from insight_engine.config import Settings, get_settings
from insight_engine.dependencies import build_orchestrator
from insight_engine.shared.errors import register_exception_handlers
from insight_engine.shared.middleware import RequestContextMiddleware
from insight_engine.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle — startup & shutdown hooks."""
    settings: Settings = app.state.settings
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.is_production,
    )
    orchestrator: InsightOrchestrator = app.state.orchestrator
    logger.info(
        "application_starting",
        env=settings.app_env.value,
        providers=orchestrator.providers,
    )

    yield

    await orchestrator.close()
    logger.info("application_shutdown")


def create_app(
    settings: Settings | None = None,
    orchestrator: InsightOrchestrator | None = None,
) -> FastAPI:
    """Application factory — creates a fully configured FastAPI instance."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Insight Engine",
        description=(
            "Resilient health-insight generation: response caching, provider "
            "circuit breaking, retries, health scoring and telemetry."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # One orchestrator per process, owned by the app
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)

    # ── Middleware (last added = outermost) ──────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware, record_metrics=settings.prometheus_enabled)

    # ── Exception handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── REST routers (versioned) ─────────────────────────────
    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(insights_router, prefix=api_v1)
    app.include_router(telemetry_router, prefix=api_v1)
    app.include_router(providers_router, prefix=api_v1)

    return app
