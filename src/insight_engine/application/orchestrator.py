"""Insight orchestrator — the main entry-point for insight generation.

Composes ResponseCache, CircuitBreaker, RetryPolicy, ProviderHealthTracker
and TelemetryAggregator into a single resilient call path::

    validate → cache → for each admissible provider: breaker ∘ retry → provider
             → health tracker → cache write → telemetry

Providers are tried in priority order; one that fails terminally hands the
call to the next provider whose circuit admits it. Health is recorded once
per provider tried (never per retry) and the error timeline once per failed
top-level call. A failed call never falls back to a stale value.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from typing import Awaitable, Sequence, TypeVar

import structlog

from insight_engine.adapters.outbound.cache import CacheStats, ResponseCache, make_cache_key
from insight_engine.domain.entities import HealthInsight, InsightAction, InsightRequest
from insight_engine.domain.enums import ActionType, InsightType
from insight_engine.domain.exceptions import (
    AllProvidersUnavailableError,
    CircuitOpenError,
    FatalProviderError,
    InsightEngineError,
    MissingPersonaError,
    ProviderError,
    RequestCancelledError,
    RetryExhaustedError,
)
from insight_engine.domain.validation import validate_request
from insight_engine.ports.outbound import InsightProviderPort, RawProviderResponse
from insight_engine.shared.observability.metrics import INSIGHT_REQUESTS_TOTAL, PROVIDER_CALL_LATENCY
from insight_engine.shared.observability.telemetry import (
    ErrorStats,
    ProviderComparison,
    TelemetryAggregator,
    TelemetrySnapshot,
    UsagePatterns,
)
from insight_engine.shared.providers.circuit_breaker import CircuitBreaker
from insight_engine.shared.providers.health import ProviderHealthTracker
from insight_engine.shared.providers.retry import RetryPolicy, Sleep
from insight_engine.shared.providers.types import CircuitState, EngineConfig, ProviderHealth

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class _InFlight:
    """Provider currently serving a top-level call, if any."""

    provider: str | None = None
    start: float = field(default_factory=time.monotonic)


def _error_text(error: BaseException) -> str:
    if isinstance(error, InsightEngineError):
        return error.code
    return f"{type(error).__name__}: {error}"


class InsightOrchestrator:
    """Resilient façade over a prioritised list of insight providers.

    Usage::

        orchestrator = InsightOrchestrator([primary, secondary], EngineConfig())
        insight = await orchestrator.generate_insight(
            InsightRequest(category=InsightCategory.PHYSICAL, metrics={"steps": 10000}),
            timeout_s=10.0,
        )

    One instance is meant to live for the whole process; construct it at
    startup and pass it around.
    """

    def __init__(
        self,
        providers: Sequence[InsightProviderPort],
        config: EngineConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not providers:
            raise ValueError("InsightOrchestrator needs at least one provider")
        names = [p.name for p in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate provider names: {names}")

        self._config = config or EngineConfig()
        cfg = self._config

        self._providers: dict[str, InsightProviderPort] = {p.name: p for p in providers}
        self._breakers: dict[str, CircuitBreaker] = {
            name: CircuitBreaker(
                name,
                failure_threshold=cfg.circuit_breaker.failure_threshold,
                reset_timeout_ms=cfg.circuit_breaker.reset_timeout_ms,
                half_open_max_attempts=cfg.circuit_breaker.half_open_max_attempts,
            )
            for name in names
        }
        self._retry = RetryPolicy(cfg.retry, sleep=sleep)
        self._health = ProviderHealthTracker(names)
        self._cache = ResponseCache(max_entries=cfg.max_metrics, ttl_seconds=cfg.cache_ttl)
        self._telemetry = TelemetryAggregator(
            health=self._health,
            cache=self._cache,
            breakers=self._breakers,
            insight_log_size=cfg.insight_log_size,
            error_bucket_seconds=cfg.error_bucket_seconds,
            cost_per_ms=cfg.cost_per_ms,
        )

    # ── Main entry-points ────────────────────────────────────
    async def generate_insight(
        self,
        request: InsightRequest,
        *,
        timeout_s: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HealthInsight:
        """Return a cached or freshly generated insight.

        Args:
            request: The insight request.
            timeout_s: Optional deadline for the whole call, retries and
                failover included.
            cancel_event: Optional token; setting it abandons the call.

        Raises:
            EmptyMetricsError: ``request.metrics`` is empty (before any I/O).
            AllProvidersUnavailableError: no provider's circuit admits the call.
            ProviderError: every admitted provider failed; wraps the last
                upstream failure.
            RequestCancelledError: the deadline passed or the token fired.
        """
        validate_request(request, strict_metric_keys=self._config.strict_metric_keys)
        category = request.category.value
        log = logger.bind(category=category)

        key = make_cache_key(request)
        cached = self._cache.get(key)
        if cached is not None:
            INSIGHT_REQUESTS_TOTAL.labels(category=category, outcome="cache_hit").inc()
            log.debug("insight_cache_hit", insight_id=cached.id)
            return cached

        in_flight = _InFlight()
        operation = self._generate_with_failover(request, in_flight)
        try:
            if timeout_s is None and cancel_event is None:
                insight, latency_ms = await operation
            else:
                insight, latency_ms = await self._run_cancellable(
                    operation, in_flight, timeout_s, cancel_event
                )
        except RequestCancelledError as exc:
            self._record_cancellation(in_flight, category)
            log.warning("insight_generation_cancelled", reason=exc.reason, provider=in_flight.provider)
            raise
        except asyncio.CancelledError:
            self._record_cancellation(in_flight, category)
            log.warning("insight_generation_cancelled_by_caller", provider=in_flight.provider)
            raise
        except InsightEngineError as exc:
            self._telemetry.record_error()
            outcome = "unavailable" if isinstance(exc, AllProvidersUnavailableError) else "failed"
            INSIGHT_REQUESTS_TOTAL.labels(category=category, outcome=outcome).inc()
            log.warning("insight_generation_failed", error=exc.code)
            raise

        self._cache.put(key, insight)
        self._telemetry.record_insight(insight, latency_ms)
        INSIGHT_REQUESTS_TOTAL.labels(category=category, outcome="generated").inc()
        log.info(
            "insight_generated",
            insight_id=insight.id,
            provider=insight.source,
            latency_ms=round(latency_ms, 1),
        )
        return insight

    async def generate_insight_for_persona(
        self,
        request: InsightRequest,
        *,
        timeout_s: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HealthInsight:
        """Same flow as ``generate_insight``; the returned id is ``persona-{id}-`` prefixed."""
        if request.persona is None:
            raise MissingPersonaError()
        insight = await self.generate_insight(request, timeout_s=timeout_s, cancel_event=cancel_event)
        return insight.with_persona_prefix(request.persona.id)

    # ── Failover across providers ────────────────────────────
    async def _generate_with_failover(
        self, request: InsightRequest, in_flight: _InFlight
    ) -> tuple[HealthInsight, float]:
        failed: list[str] = []
        last_failure: ProviderError | None = None

        for name, provider in self._providers.items():
            # Skips OPEN circuits and HALF_OPEN ones with no free trial slot
            if not self._breakers[name].can_execute():
                continue

            in_flight.provider = name
            in_flight.start = time.monotonic()
            try:
                insight = await self._call_provider(provider, request)
            except CircuitOpenError:
                # A concurrent caller took the last trial slot first
                in_flight.provider = None
                continue
            except ProviderError as exc:
                latency_ms = (time.monotonic() - in_flight.start) * 1000
                in_flight.provider = None
                self._health.record_failure(name, latency_ms, _error_text(exc.cause))
                PROVIDER_CALL_LATENCY.labels(provider=name, outcome="failure").observe(latency_ms / 1000)
                logger.warning(
                    "insight_provider_failed",
                    provider=name,
                    attempts=exc.attempts,
                    error=_error_text(exc.cause),
                )
                if isinstance(exc.cause, FatalProviderError) and exc.cause.is_request_rejection:
                    # Malformed for one provider, malformed for all
                    raise
                failed.append(name)
                last_failure = exc
                continue

            latency_ms = (time.monotonic() - in_flight.start) * 1000
            self._health.record_success(name, latency_ms)
            PROVIDER_CALL_LATENCY.labels(provider=name, outcome="success").observe(latency_ms / 1000)
            if failed:
                logger.info("provider_failover_success", provider=name, failed_providers=failed)
            return insight, latency_ms

        if last_failure is not None:
            raise last_failure

        retry_after = min(b.retry_after() for b in self._breakers.values())
        logger.error("all_providers_unavailable", providers=list(self._providers))
        raise AllProvidersUnavailableError(list(self._providers), retry_after_s=retry_after)

    # ── Single provider (breaker ∘ retry) ────────────────────
    async def _call_provider(
        self, provider: InsightProviderPort, request: InsightRequest
    ) -> HealthInsight:
        """One provider, retries included.

        Raises:
            ProviderError: the provider failed terminally, retries ran out, or
                its circuit opened between retries (wraps the upstream error).
            CircuitOpenError: the circuit rejected the first attempt.
        """
        breaker = self._breakers[provider.name]
        attempts = 0
        last_error: BaseException | None = None

        async def _attempt() -> HealthInsight:
            nonlocal attempts, last_error
            attempts += 1
            try:
                raw = await provider.generate(request)
                return self._build_insight(provider.name, request, raw)
            except Exception as exc:
                last_error = exc
                raise

        try:
            return await self._retry.execute(lambda: breaker.call(_attempt))
        except RetryExhaustedError as exc:
            raise ProviderError(provider.name, exc.last_error, attempts=exc.attempts) from exc.last_error
        except CircuitOpenError:
            if last_error is None:
                raise
            raise ProviderError(provider.name, last_error, attempts=attempts) from last_error
        except Exception as exc:
            raise ProviderError(provider.name, exc, attempts=attempts) from exc

    @staticmethod
    async def _run_cancellable(
        operation: Awaitable[T],
        in_flight: _InFlight,
        timeout_s: float | None,
        cancel_event: asyncio.Event | None,
    ) -> T:
        task = asyncio.ensure_future(operation)
        waiters: set[asyncio.Future] = {task}  # type: ignore[type-arg]
        cancel_waiter: asyncio.Future | None = None  # type: ignore[type-arg]
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        # Stop in-flight retries right away
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        reason = "cancelled" if cancel_event is not None and cancel_event.is_set() else "deadline exceeded"
        raise RequestCancelledError(in_flight.provider, reason)

    def _build_insight(
        self, provider_name: str, request: InsightRequest, raw: RawProviderResponse
    ) -> HealthInsight:
        try:
            insight_type = InsightType(raw.type)
            action = (
                InsightAction(type=ActionType(raw.action["type"]), message=raw.action["message"])
                if raw.action
                else None
            )
        except (KeyError, ValueError) as exc:
            raise FatalProviderError(provider_name, f"Malformed provider response: {exc}") from exc

        if not raw.message:
            raise FatalProviderError(provider_name, "Provider returned an empty message")

        related = raw.related_metrics if raw.related_metrics is not None else tuple(request.metrics)
        return HealthInsight(
            category=request.category,
            type=insight_type,
            message=raw.message,
            related_metrics=tuple(related),
            action=action,
            source=provider_name,
        )

    def _record_cancellation(self, in_flight: _InFlight, category: str) -> None:
        # Abandoned calls count as failures but contribute no latency sample
        if in_flight.provider is not None:
            self._health.record_failure(in_flight.provider, None, "REQUEST_CANCELLED")
        self._telemetry.record_error()
        INSIGHT_REQUESTS_TOTAL.labels(category=category, outcome="cancelled").inc()

    # ── Read-only accessors ──────────────────────────────────
    @property
    def providers(self) -> list[str]:
        return list(self._providers)

    def get_provider_health(self) -> dict[str, ProviderHealth]:
        results: dict[str, ProviderHealth] = {}
        for name in self._providers:
            health = self._health.health(name)
            health.circuit_state = self._breakers[name].state.value
            results[name] = health
        return results

    def get_circuit_state(self, provider_name: str) -> CircuitState:
        return self._breakers[provider_name].state

    def get_telemetry_snapshot(self) -> TelemetrySnapshot:
        return self._telemetry.snapshot()

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def get_error_stats(self) -> ErrorStats:
        return self._telemetry.error_stats()

    def get_usage_patterns(self) -> UsagePatterns:
        return self._telemetry.usage_patterns()

    def get_provider_comparison(self) -> ProviderComparison:
        return self._telemetry.provider_comparison()

    # ── Admin ────────────────────────────────────────────────
    def reset_provider(self, provider_name: str) -> None:
        """Admin reset — force a provider's circuit back to CLOSED."""
        breaker = self._breakers.get(provider_name)
        if breaker is None:
            raise KeyError(provider_name)
        breaker.reset()
        logger.info("provider_admin_reset", provider=provider_name)

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()
