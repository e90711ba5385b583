"""Tests for insight request entities and boundary validation."""

from __future__ import annotations

import math

import pytest

from insight_engine.domain.entities import HealthInsight, InsightRequest
from insight_engine.domain.enums import InsightCategory, InsightType
from insight_engine.domain.exceptions import EmptyMetricsError, UnknownMetricError, ValidationError
from insight_engine.domain.validation import validate_request


class TestInsightRequest:
    def test_metrics_are_frozen(self) -> None:
        source = {"steps": 10000}
        request = InsightRequest(category=InsightCategory.PHYSICAL, metrics=source)
        source["steps"] = 1
        assert request.metrics["steps"] == 10000.0
        with pytest.raises(TypeError):
            request.metrics["steps"] = 5  # type: ignore[index]

    def test_category_is_coerced(self) -> None:
        request = InsightRequest(category="SLEEP", metrics={"hours": 7})  # type: ignore[arg-type]
        assert request.category is InsightCategory.SLEEP

    def test_unknown_category_rejected(self) -> None:
        with pytest.raises(ValueError):
            InsightRequest(category="DIET", metrics={"x": 1})  # type: ignore[arg-type]


class TestHealthInsight:
    def test_persona_prefix_leaves_original_untouched(self) -> None:
        insight = HealthInsight(category=InsightCategory.SLEEP, type=InsightType.INFO, message="m")
        scoped = insight.with_persona_prefix("p-42")
        assert scoped.id == f"persona-p-42-{insight.id}"
        assert insight.id.startswith("insight-")
        assert scoped.message == insight.message

    def test_ids_are_unique(self) -> None:
        a = HealthInsight(category=InsightCategory.SLEEP, type=InsightType.INFO, message="m")
        b = HealthInsight(category=InsightCategory.SLEEP, type=InsightType.INFO, message="m")
        assert a.id != b.id


class TestValidateRequest:
    def test_empty_metrics(self) -> None:
        request = InsightRequest(category=InsightCategory.PHYSICAL, metrics={})
        with pytest.raises(EmptyMetricsError) as exc_info:
            validate_request(request)
        assert exc_info.value.code == "EMPTY_METRICS"

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_values(self, value: float) -> None:
        request = InsightRequest(category=InsightCategory.PHYSICAL, metrics={"steps": value})
        with pytest.raises(ValidationError):
            validate_request(request)

    def test_unknown_keys_tolerated_by_default(self) -> None:
        request = InsightRequest(category=InsightCategory.SLEEP, metrics={"dreams": 3})
        validate_request(request)

    def test_unknown_keys_rejected_in_strict_mode(self) -> None:
        request = InsightRequest(category=InsightCategory.SLEEP, metrics={"dreams": 3, "hours": 7})
        with pytest.raises(UnknownMetricError) as exc_info:
            validate_request(request, strict_metric_keys=True)
        assert exc_info.value.keys == ["dreams"]

    def test_category_without_allow_list_accepts_any_key(self) -> None:
        request = InsightRequest(category=InsightCategory.HEALTH, metrics={"anything": 1})
        validate_request(request, strict_metric_keys=True)
