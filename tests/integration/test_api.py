"""Integration tests for API endpoints using FastAPI TestClient."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from insight_engine.application.orchestrator import InsightOrchestrator
from insight_engine.config import get_settings
from insight_engine.domain.exceptions import TransientProviderError
from insight_engine.main import create_app
from tests.conftest import FakeProvider, SleepRecorder, make_config


@pytest.fixture
def settings():
    return get_settings(app_env="development", prometheus_enabled=True)


@pytest.fixture
def provider():
    return FakeProvider("alpha")


@pytest.fixture
def client(settings, provider):
    orchestrator = InsightOrchestrator([provider], make_config(), sleep=SleepRecorder())
    return TestClient(create_app(settings, orchestrator))


@pytest.fixture
def failing_client(settings):
    provider = FakeProvider(
        "alpha", [TransientProviderError("alpha", "HTTP 503", status_code=503) for _ in range(2)]
    )
    orchestrator = InsightOrchestrator(
        [provider],
        make_config(max_attempts=1, failure_threshold=2, reset_timeout_ms=60_000),
        sleep=SleepRecorder(),
    )
    return TestClient(create_app(settings, orchestrator))


def _body(**overrides):
    body = {"category": "PHYSICAL", "metrics": {"steps": 10000}}
    body.update(overrides)
    return body


class TestHealthEndpoints:
    def test_health_check(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["providers"] == {"alpha": "closed"}
        assert "version" in data
        assert "X-Request-ID" in resp.headers

    def test_metrics_endpoint(self, client):
        client.get("/api/v1/health")
        resp = client.get("/api/v1/metrics")
        assert resp.status_code == 200
        assert b"http_requests_total" in resp.content

    def test_request_id_is_echoed(self, client):
        resp = client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_metrics_are_labelled_by_route_template(self, client):
        client.post("/api/v1/providers/ghost/reset")
        resp = client.get("/api/v1/metrics")
        assert b'endpoint="/api/v1/providers/{provider_id}/reset"' in resp.content
        assert b"/api/v1/providers/ghost/reset" not in resp.content


class TestInsightEndpoints:
    def test_generate_insight(self, client, provider):
        resp = client.post("/api/v1/insights", json=_body())
        assert resp.status_code == 200
        data = resp.json()
        assert data["category"] == "PHYSICAL"
        assert data["type"] == "success"
        assert data["source"] == "alpha"
        assert data["related_metrics"] == ["steps"]
        assert data["id"].startswith("insight-")

    def test_repeat_request_hits_cache(self, client, provider):
        first = client.post("/api/v1/insights", json=_body()).json()
        second = client.post("/api/v1/insights", json=_body()).json()
        assert first["id"] == second["id"]
        assert provider.calls == 1

        stats = client.get("/api/v1/telemetry/cache").json()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_empty_metrics_is_422(self, client, provider):
        resp = client.post("/api/v1/insights", json=_body(metrics={}))
        assert resp.status_code == 422
        assert resp.json()["code"] == "EMPTY_METRICS"
        assert provider.calls == 0

    def test_unknown_category_is_422(self, client):
        resp = client.post("/api/v1/insights", json=_body(category="DIET"))
        assert resp.status_code == 422

    def test_persona_insight(self, client):
        resp = client.post(
            "/api/v1/insights/persona",
            json=_body(persona={"id": "p-7", "age": 30, "conditions": ["asthma"]}),
        )
        assert resp.status_code == 200
        assert resp.json()["id"].startswith("persona-p-7-insight-")

    def test_persona_insight_without_persona(self, client):
        resp = client.post("/api/v1/insights/persona", json=_body())
        assert resp.status_code == 422
        assert resp.json()["code"] == "MISSING_PERSONA"


class TestResilienceEndpoints:
    def test_provider_failure_then_open_circuit(self, failing_client):
        for steps in (1, 2):
            resp = failing_client.post("/api/v1/insights", json=_body(metrics={"steps": steps}))
            assert resp.status_code == 502
            assert resp.json()["code"] == "PROVIDER_ERROR"

        resp = failing_client.post("/api/v1/insights", json=_body(metrics={"steps": 3}))
        assert resp.status_code == 503
        assert resp.json()["code"] == "ALL_PROVIDERS_UNAVAILABLE"
        assert int(resp.headers["Retry-After"]) >= 1

        health = failing_client.get("/api/v1/health").json()
        assert health["status"] == "degraded"

        providers = failing_client.get("/api/v1/providers/health").json()
        assert providers[0]["provider_id"] == "alpha"
        assert providers[0]["circuit_state"] == "open"
        assert providers[0]["total_failures"] == 2

        errors = failing_client.get("/api/v1/telemetry/errors").json()
        assert sum(b["count"] for b in errors["timeline"]) == 3

    def test_admin_reset(self, failing_client):
        for steps in (1, 2):
            failing_client.post("/api/v1/insights", json=_body(metrics={"steps": steps}))

        resp = failing_client.post("/api/v1/providers/alpha/reset")
        assert resp.status_code == 200
        assert resp.json() == {"status": "reset", "provider_id": "alpha"}

        resp = failing_client.post("/api/v1/insights", json=_body(metrics={"steps": 3}))
        assert resp.status_code == 200

    def test_reset_unknown_provider(self, client):
        resp = client.post("/api/v1/providers/ghost/reset")
        assert resp.status_code == 404


class TestTelemetryEndpoints:
    def test_snapshot_usage_and_comparison(self, client):
        client.post("/api/v1/insights", json=_body())
        client.post("/api/v1/insights", json=_body(category="SLEEP", metrics={"hours": 7}))

        snap = client.get("/api/v1/telemetry/snapshot").json()
        assert snap["total_generated"] == 2
        assert snap["total_errors"] == 0
        assert snap["providers"]["alpha"]["circuit_state"] == "closed"

        usage = client.get("/api/v1/telemetry/usage").json()
        assert set(usage["popular_categories"]) == {"PHYSICAL", "SLEEP"}
        assert sum(usage["time_distribution"].values()) == 2

        comparison = client.get("/api/v1/providers/comparison").json()
        assert comparison["performance_comparison"]["alpha"]["reliability"] == 1.0
        assert "alpha" in comparison["cost_comparison"]
