"""Outbound ports — abstract interfaces the core depends on.

Adapters in ``insight_engine.adapters.outbound`` implement these.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from insight_engine.domain.entities import InsightRequest


@dataclass(frozen=True)
class RawProviderResponse:
    """Provider output before it becomes a ``HealthInsight``."""

    message: str
    type: str = "info"
    related_metrics: tuple[str, ...] | None = None
    action: dict[str, str] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Insight provider port
# ═══════════════════════════════════════════════════════════════
class InsightProviderPort(ABC):
    """One named upstream AI provider.

    ``generate`` performs exactly one network call. Implementations raise
    ``TransientProviderError`` for retryable failures and
    ``FatalProviderError`` for everything else.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def generate(self, request: InsightRequest) -> RawProviderResponse:
        """Send the request upstream and return the raw response."""
        ...

    async def close(self) -> None:
        """Release network resources, if any."""
        return None
