"""Insight Engine — Application Configuration."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from insight_engine.shared.providers.types import CircuitBreakerConfig, EngineConfig, RetryConfig


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Centralised, validated configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "insight-engine"
    app_env: Environment = Environment.DEVELOPMENT
    app_debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # ── Providers ────────────────────────────────────────────
    # Comma-separated, highest priority first
    provider_names: str = "local"
    provider_base_url: str = ""
    provider_api_key: str = ""
    provider_timeout_seconds: float = Field(30.0, gt=0)

    # ── Retry ────────────────────────────────────────────────
    retry_max_attempts: int = Field(3, ge=1)
    retry_initial_delay_ms: float = Field(100.0, ge=0)
    retry_max_delay_ms: float = Field(500.0, ge=0)
    retry_backoff_multiplier: float = Field(2.0, ge=1.0)

    # ── Circuit breaker ──────────────────────────────────────
    circuit_breaker_failure_threshold: int = Field(2, ge=1)
    circuit_breaker_reset_timeout_ms: float = Field(5000.0, gt=0)
    circuit_breaker_half_open_max_attempts: int = Field(2, ge=1)

    # ── Cache ────────────────────────────────────────────────
    cache_ttl_seconds: float = Field(3600.0, gt=0)
    max_metrics: int = Field(1000, ge=1)  # cache capacity

    # ── Telemetry ────────────────────────────────────────────
    error_bucket_seconds: int = Field(60, ge=1)
    insight_log_size: int = Field(1000, ge=1)
    cost_per_ms: float = Field(0.001, ge=0)
    prometheus_enabled: bool = True

    # ── Validation ───────────────────────────────────────────
    strict_metric_keys: bool = False

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.app_env == Environment.PRODUCTION

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _check_retry_bounds(self) -> Settings:
        if self.retry_max_delay_ms < self.retry_initial_delay_ms:
            raise ValueError("retry_max_delay_ms must be >= retry_initial_delay_ms")
        return self

    def to_engine_config(self) -> EngineConfig:
        return EngineConfig(
            retry=RetryConfig(
                max_attempts=self.retry_max_attempts,
                initial_delay_ms=self.retry_initial_delay_ms,
                max_delay_ms=self.retry_max_delay_ms,
                backoff_multiplier=self.retry_backoff_multiplier,
            ),
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=self.circuit_breaker_failure_threshold,
                reset_timeout_ms=self.circuit_breaker_reset_timeout_ms,
                half_open_max_attempts=self.circuit_breaker_half_open_max_attempts,
            ),
            cache_ttl=self.cache_ttl_seconds,
            max_metrics=self.max_metrics,
            error_bucket_seconds=self.error_bucket_seconds,
            insight_log_size=self.insight_log_size,
            cost_per_ms=self.cost_per_ms,
            strict_metric_keys=self.strict_metric_keys,
        )


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)
