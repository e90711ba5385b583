"""Global exception handlers — map insight-engine errors to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
import structlog

from insight_engine.domain.exceptions import (
    AllProvidersUnavailableError,
    CircuitOpenError,
    InsightEngineError,
    ProviderError,
    RequestCancelledError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def _retry_after_header(seconds: float) -> dict[str, str]:
    return {"Retry-After": str(max(1, int(round(seconds))))}


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain→HTTP exception mappings."""

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=422,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(AllProvidersUnavailableError)
    async def handle_all_unavailable(
        request: Request, exc: AllProvidersUnavailableError
    ) -> ORJSONResponse:
        logger.error("all_providers_unavailable_http", providers=exc.providers)
        return ORJSONResponse(
            status_code=503,
            content={"code": exc.code, "message": exc.message},
            headers=_retry_after_header(exc.retry_after_s),
        )

    @app.exception_handler(CircuitOpenError)
    async def handle_circuit_open(request: Request, exc: CircuitOpenError) -> ORJSONResponse:
        logger.warning("circuit_open_http", provider=exc.provider)
        return ORJSONResponse(
            status_code=503,
            content={"code": exc.code, "message": exc.message},
            headers=_retry_after_header(exc.retry_after_s),
        )

    @app.exception_handler(ProviderError)
    async def handle_provider(request: Request, exc: ProviderError) -> ORJSONResponse:
        logger.error("provider_error_http", provider=exc.provider, attempts=exc.attempts)
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(RequestCancelledError)
    async def handle_cancelled(request: Request, exc: RequestCancelledError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=504,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(InsightEngineError)
    async def handle_engine(request: Request, exc: InsightEngineError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return ORJSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )
