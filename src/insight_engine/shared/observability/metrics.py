"""Prometheus metrics for the insight engine."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


# ── HTTP metrics ─────────────────────────────────────────────
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Insight metrics ──────────────────────────────────────────
INSIGHT_REQUESTS_TOTAL = Counter(
    "insight_requests_total",
    "Top-level insight requests",
    ["category", "outcome"],
)

INSIGHT_CACHE_LOOKUPS = Counter(
    "insight_cache_lookups_total",
    "Insight cache lookups",
    ["result"],  # hit / miss / expired
)

# ── Provider metrics ─────────────────────────────────────────
PROVIDER_CALL_LATENCY = Histogram(
    "insight_provider_latency_seconds",
    "End-to-end provider latency including retries",
    ["provider", "outcome"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

PROVIDER_RETRIES = Counter(
    "insight_provider_retries_total",
    "Retries scheduled after a transient provider failure",
)

CIRCUIT_TRANSITIONS = Counter(
    "insight_circuit_transitions_total",
    "Circuit breaker state transitions",
    ["provider", "to_state"],
)
