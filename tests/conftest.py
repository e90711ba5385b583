"""Shared test fixtures."""

from __future__ import annotations

import asyncio

import pytest

from insight_engine.application.orchestrator import InsightOrchestrator
from insight_engine.domain.entities import InsightRequest, PersonaProfile
from insight_engine.domain.enums import InsightCategory
from insight_engine.ports.outbound import InsightProviderPort, RawProviderResponse
from insight_engine.shared.providers.types import CircuitBreakerConfig, EngineConfig, RetryConfig


class FakeProvider(InsightProviderPort):
    """Scripted provider: pops one outcome per call, then succeeds."""

    def __init__(
        self,
        name: str = "alpha",
        outcomes: list[BaseException | RawProviderResponse] | None = None,
        *,
        delay_s: float = 0.0,
    ) -> None:
        self._name = name
        self.outcomes = list(outcomes or [])
        self.delay_s = delay_s
        self.calls = 0
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    async def generate(self, request: InsightRequest) -> RawProviderResponse:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return RawProviderResponse(
            message=f"{self._name} insight for {request.category.value}",
            type="success",
        )

    async def close(self) -> None:
        self.closed = True


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_config(
    *,
    max_attempts: int = 3,
    failure_threshold: int = 2,
    reset_timeout_ms: float = 100.0,
    half_open_max_attempts: int = 2,
    cache_ttl: float = 3600.0,
    max_metrics: int = 1000,
) -> EngineConfig:
    return EngineConfig(
        retry=RetryConfig(
            max_attempts=max_attempts,
            initial_delay_ms=100.0,
            max_delay_ms=500.0,
            backoff_multiplier=2.0,
        ),
        circuit_breaker=CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            reset_timeout_ms=reset_timeout_ms,
            half_open_max_attempts=half_open_max_attempts,
        ),
        cache_ttl=cache_ttl,
        max_metrics=max_metrics,
    )


@pytest.fixture
def physical_request() -> InsightRequest:
    return InsightRequest(category=InsightCategory.PHYSICAL, metrics={"steps": 10000})


@pytest.fixture
def persona() -> PersonaProfile:
    return PersonaProfile(
        id="p-42",
        age=34,
        gender="female",
        conditions=("asthma",),
        activity_level="moderate",
        country="NZ",
        language="en",
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider("alpha")


@pytest.fixture
def orchestrator(fake_provider: FakeProvider, sleep_recorder: SleepRecorder) -> InsightOrchestrator:
    return InsightOrchestrator([fake_provider], make_config(), sleep=sleep_recorder)
