"""Domain entities for insight generation.

Requests and insights are immutable value-like records: an insight is
produced once per successful generation and cached by value afterwards.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping

from insight_engine.domain.enums import ActionType, InsightCategory, InsightType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_insight_id() -> str:
    return f"insight-{uuid.uuid4().hex}"


@dataclass(frozen=True, slots=True)
class PersonaProfile:
    """The person an insight is personalised for."""

    id: str
    age: int | None = None
    gender: str | None = None
    conditions: tuple[str, ...] = ()
    activity_level: str | None = None
    country: str | None = None
    language: str | None = None


@dataclass(frozen=True, slots=True)
class InsightRequest:
    """Immutable insight request.

    ``category`` and ``metrics`` (plus ``persona.id`` when present) form the
    cache key; metric ordering is irrelevant.
    """

    category: InsightCategory
    metrics: Mapping[str, float]
    persona: PersonaProfile | None = None

    def __post_init__(self) -> None:
        frozen = MappingProxyType({str(k): float(v) for k, v in dict(self.metrics).items()})
        object.__setattr__(self, "metrics", frozen)
        object.__setattr__(self, "category", InsightCategory(self.category))


@dataclass(frozen=True, slots=True)
class InsightAction:
    type: ActionType
    message: str


@dataclass(frozen=True, slots=True)
class HealthInsight:
    """A generated insight. Never mutated once produced."""

    category: InsightCategory
    type: InsightType
    message: str
    related_metrics: tuple[str, ...] = ()
    id: str = field(default_factory=new_insight_id)
    date: datetime = field(default_factory=_utcnow)
    action: InsightAction | None = None
    source: str | None = None

    def with_persona_prefix(self, persona_id: str) -> HealthInsight:
        """Copy with the id scoped to a persona (``persona-{id}-...``)."""
        return replace(self, id=f"persona-{persona_id}-{self.id}")
