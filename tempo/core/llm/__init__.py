# /app/tempo/core/llm/__init__.py

from __future__ import annotations

from .client import IntentParser
from .schemas import REQUIRED_INTENT_KEYS, CalendarIntent, IntentShapeReport, check_intent_shape

__all__ = [
    "IntentParser",
    "CalendarIntent",
    "IntentShapeReport",
    "REQUIRED_INTENT_KEYS",
    "check_intent_shape",
]
