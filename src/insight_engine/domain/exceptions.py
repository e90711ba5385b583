"""Domain-specific exception hierarchy.

All exceptions inherit from ``InsightEngineError`` so callers can catch the
entire family in one clause while still discriminating on subclass.
"""

from __future__ import annotations


class InsightEngineError(Exception):
    """Base class for all insight-engine errors."""

    def __init__(self, message: str, *, code: str = "INSIGHT_ENGINE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Validation ───────────────────────────────────────────────
class ValidationError(InsightEngineError):
    """Input failed validation rules. Never retried, never trips a breaker."""

    def __init__(self, message: str, *, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message, code=code)


class EmptyMetricsError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Insight request must contain at least one metric", code="EMPTY_METRICS")


class UnknownMetricError(ValidationError):
    def __init__(self, category: str, keys: list[str]) -> None:
        self.keys = keys
        super().__init__(
            f"Metrics {', '.join(sorted(keys))} are not allowed for category {category!r}",
            code="UNKNOWN_METRIC",
        )


class MissingPersonaError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Persona insight requests require a persona", code="MISSING_PERSONA")


# ── Provider call outcomes ───────────────────────────────────
class ProviderCallError(InsightEngineError):
    """Raised by a provider client for a single failed call."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        code: str = "PROVIDER_CALL_ERROR",
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}", code=code)


class TransientProviderError(ProviderCallError):
    """Timeout, 5xx-equivalent or network failure. Retryable."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(provider, message, status_code=status_code, code="PROVIDER_TRANSIENT")


class FatalProviderError(ProviderCallError):
    """Non-retryable upstream failure (auth, malformed request, bad payload)."""

    # Statuses meaning "your request was malformed" rather than "provider is broken"
    REQUEST_REJECTED_STATUSES = frozenset({400, 422})

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(provider, message, status_code=status_code, code="PROVIDER_FATAL")

    @property
    def is_request_rejection(self) -> bool:
        return self.status_code in self.REQUEST_REJECTED_STATUSES


# ── Circuit breaking ─────────────────────────────────────────
class CircuitOpenError(InsightEngineError):
    """The provider's circuit is open; no call was attempted."""

    def __init__(
        self,
        provider: str,
        *,
        retry_after_s: float = 0.0,
        message: str | None = None,
        code: str = "CIRCUIT_OPEN",
    ) -> None:
        self.provider = provider
        self.retry_after_s = retry_after_s
        super().__init__(message or f"Circuit breaker is open for provider {provider!r}", code=code)


class AllProvidersUnavailableError(CircuitOpenError):
    """Every configured provider's circuit is open."""

    def __init__(self, providers: list[str], *, retry_after_s: float = 0.0) -> None:
        self.providers = providers
        super().__init__(
            ",".join(providers),
            retry_after_s=retry_after_s,
            message=f"All providers unavailable: {', '.join(providers) or 'none configured'}",
            code="ALL_PROVIDERS_UNAVAILABLE",
        )


# ── Orchestration outcomes ───────────────────────────────────
class RetryExhaustedError(InsightEngineError):
    """Every retry attempt failed with a transient error."""

    def __init__(self, last_error: BaseException, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Failed after {attempts} attempts: {last_error}",
            code="RETRY_EXHAUSTED",
        )


class ProviderError(InsightEngineError):
    """Terminal provider failure surfaced to the caller."""

    def __init__(self, provider: str, cause: BaseException, *, attempts: int = 1) -> None:
        self.provider = provider
        self.cause = cause
        self.attempts = attempts
        super().__init__(f"[{provider}] {cause}", code="PROVIDER_ERROR")


class RequestCancelledError(InsightEngineError):
    """The caller's deadline passed or its cancel token fired."""

    def __init__(self, provider: str | None, reason: str = "cancelled") -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Insight request {reason}", code="REQUEST_CANCELLED")
