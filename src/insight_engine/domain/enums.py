"""Domain enumerations for insight generation."""

from __future__ import annotations

import enum


class InsightCategory(str, enum.Enum):
    """Health area an insight request is about."""

    PHYSICAL = "PHYSICAL"
    SLEEP = "SLEEP"
    NUTRITION = "NUTRITION"
    MENTAL = "MENTAL"
    VITALS = "VITALS"
    HEALTH = "HEALTH"
    MEDICATION = "MEDICATION"
    EXERCISE = "EXERCISE"


class InsightType(str, enum.Enum):
    """Tone of a generated insight."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class ActionType(str, enum.Enum):
    SUGGESTION = "suggestion"
    ACTION = "action"
