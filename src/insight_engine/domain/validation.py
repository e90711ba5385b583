"""Boundary validation for insight requests."""

from __future__ import annotations

import math

import structlog

from insight_engine.domain.entities import InsightRequest
from insight_engine.domain.enums import InsightCategory
from insight_engine.domain.exceptions import EmptyMetricsError, UnknownMetricError, ValidationError

logger = structlog.get_logger(__name__)


# Known metric keys per category. Categories missing here accept any key.
CATEGORY_METRIC_KEYS: dict[InsightCategory, frozenset[str]] = {
    InsightCategory.PHYSICAL: frozenset(
        {"steps", "distance", "calories", "active_minutes", "weight", "bmi"}
    ),
    InsightCategory.EXERCISE: frozenset(
        {"steps", "active_minutes", "workouts", "calories", "distance", "heart_rate"}
    ),
    InsightCategory.SLEEP: frozenset(
        {"duration", "hours", "quality", "deep_sleep", "rem_sleep", "awakenings", "efficiency"}
    ),
    InsightCategory.NUTRITION: frozenset(
        {"calories", "protein", "carbs", "fat", "fiber", "sugar", "water"}
    ),
    InsightCategory.MENTAL: frozenset({"mood", "stress", "anxiety", "focus", "energy"}),
    InsightCategory.VITALS: frozenset(
        {
            "heart_rate",
            "resting_heart_rate",
            "blood_pressure_systolic",
            "blood_pressure_diastolic",
            "oxygen_saturation",
            "temperature",
            "respiratory_rate",
            "glucose",
        }
    ),
    InsightCategory.MEDICATION: frozenset({"adherence", "doses_taken", "doses_missed"}),
}


def validate_request(request: InsightRequest, *, strict_metric_keys: bool = False) -> None:
    """Reject malformed requests before any I/O happens.

    Raises:
        EmptyMetricsError: ``metrics`` is empty.
        ValidationError: a metric value is not a finite number.
        UnknownMetricError: ``strict_metric_keys`` is on and a key is outside
            the category's allow-list.
    """
    if not request.metrics:
        raise EmptyMetricsError()

    for key, value in request.metrics.items():
        if not math.isfinite(value):
            raise ValidationError(f"Metric {key!r} must be a finite number")

    allowed = CATEGORY_METRIC_KEYS.get(request.category)
    if allowed is None:
        return
    unknown = [k for k in request.metrics if k not in allowed]
    if not unknown:
        return
    if strict_metric_keys:
        raise UnknownMetricError(request.category.value, unknown)
    logger.warning(
        "insight_request_unknown_metrics",
        category=request.category.value,
        keys=sorted(unknown),
    )
