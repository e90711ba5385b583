"""Insight provider adapters.

Each adapter performs one upstream call and maps failures onto the
transient/fatal split the resilience layer understands. Retries, circuit
breaking and health tracking live in the orchestrator, not here.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from insight_engine.domain.entities import InsightRequest
from insight_engine.domain.exceptions import FatalProviderError, TransientProviderError
from insight_engine.ports.outbound import InsightProviderPort, RawProviderResponse

logger = structlog.get_logger(__name__)

# Upstream statuses worth retrying besides the 5xx range
_RETRYABLE_STATUSES = frozenset({408, 425, 429})


class HttpInsightProvider(InsightProviderPort):
    """JSON-over-HTTP insight provider.

    POSTs ``{"category", "metrics", "persona"}`` to ``{base_url}/insights``
    and expects ``{"message", "type", "related_metrics"?, "action"?}`` back.
    Vendor-specific prompting happens behind that endpoint.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        *,
        api_key: str = "",
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._name = name
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    @property
    def name(self) -> str:
        return self._name

    async def generate(self, request: InsightRequest) -> RawProviderResponse:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            resp = await self._client.post(
                f"{self._base_url}/insights",
                headers=headers,
                json=_request_payload(request),
            )
        except httpx.TimeoutException as exc:
            raise TransientProviderError(self._name, f"Timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(self._name, f"Network error: {exc}") from exc

        if resp.status_code >= 500 or resp.status_code in _RETRYABLE_STATUSES:
            raise TransientProviderError(
                self._name, f"HTTP {resp.status_code}", status_code=resp.status_code
            )
        if resp.status_code >= 400:
            logger.warning(
                "insight_provider_rejected",
                provider=self._name,
                status=resp.status_code,
                body=resp.text[:200],
            )
            raise FatalProviderError(
                self._name, f"HTTP {resp.status_code}", status_code=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise FatalProviderError(self._name, "Response is not valid JSON") from exc
        return _parse_response(self._name, data)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LocalInsightProvider(InsightProviderPort):
    """Deterministic, network-free provider.

    Produces a templated insight from the request alone. Used for local
    development and as a last-resort entry in the provider list.
    """

    def __init__(self, name: str = "local") -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def generate(self, request: InsightRequest) -> RawProviderResponse:
        category = request.category.value
        summary = ", ".join(f"{k}={v:g}" for k, v in sorted(request.metrics.items()))
        return RawProviderResponse(
            message=f"Generated insight for {category}: {summary}",
            type="info",
            related_metrics=tuple(request.metrics),
        )


def _request_payload(request: InsightRequest) -> dict[str, Any]:
    persona = request.persona
    return {
        "category": request.category.value,
        "metrics": dict(request.metrics),
        "persona": (
            {
                "id": persona.id,
                "age": persona.age,
                "gender": persona.gender,
                "conditions": list(persona.conditions),
                "activity_level": persona.activity_level,
                "country": persona.country,
                "language": persona.language,
            }
            if persona
            else None
        ),
    }


def _parse_response(provider: str, data: Any) -> RawProviderResponse:
    if not isinstance(data, dict) or not isinstance(data.get("message"), str):
        raise FatalProviderError(provider, "Response is missing 'message'")
    related = data.get("related_metrics")
    action = data.get("action")
    return RawProviderResponse(
        message=data["message"],
        type=str(data.get("type", "info")),
        related_metrics=tuple(str(m) for m in related) if isinstance(related, list) else None,
        action=action if isinstance(action, dict) else None,
        metadata={k: v for k, v in data.items() if k not in {"message", "type", "related_metrics", "action"}},
    )


def build_providers(
    *,
    provider_names: str = "local",
    base_url: str = "",
    api_key: str = "",
    timeout_s: float = 30.0,
) -> list[InsightProviderPort]:
    """Build the ordered provider list from settings values.

    ``provider_names`` is comma-separated, highest priority first. The name
    ``local`` maps to ``LocalInsightProvider``; any other name maps to an
    ``HttpInsightProvider`` at ``{base_url}/{name}``.
    """
    providers: list[InsightProviderPort] = []
    for raw in provider_names.split(","):
        name = raw.strip().lower()
        if not name:
            continue
        if name == "local":
            providers.append(LocalInsightProvider())
            continue
        if not base_url:
            logger.warning("insight_provider_skipped_no_base_url", provider=name)
            continue
        providers.append(
            HttpInsightProvider(
                name,
                f"{base_url.rstrip('/')}/{name}",
                api_key=api_key,
                timeout_s=timeout_s,
            )
        )

    if not providers:
        logger.warning("no_insight_providers_configured_using_local")
        providers.append(LocalInsightProvider())
    return providers
