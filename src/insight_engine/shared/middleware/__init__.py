"""Per-request context for the insight API."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from insight_engine.shared.observability.metrics import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _route_template(request: Request) -> str:
    """Matched route path (``/api/v1/providers/{provider_id}/reset``), never the raw URL."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Correlates HTTP calls with insight-engine events.

    ``request_id`` and ``path`` are bound into structlog contextvars for the
    lifetime of the request, so orchestrator events (``insight_generated``,
    ``insight_provider_failed``, ``all_providers_unavailable``) carry them.
    Successful calls are already logged by the orchestrator; only error
    responses get an extra ``http_request_failed`` event here.
    """

    def __init__(self, app: ASGIApp, *, record_metrics: bool = True) -> None:
        super().__init__(app)
        self._record_metrics = record_metrics

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)
        start = time.monotonic()
        try:
            response = await call_next(request)
            duration = time.monotonic() - start
            endpoint = _route_template(request)

            if self._record_metrics:
                HTTP_REQUESTS_TOTAL.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                ).inc()
                HTTP_REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(duration)

            if response.status_code >= 400:
                logger.warning(
                    "http_request_failed",
                    method=request.method,
                    endpoint=endpoint,
                    status=response.status_code,
                    duration_ms=round(duration * 1000, 2),
                )
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "path")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
