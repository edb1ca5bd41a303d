# tempo/core/llm/schemas.py
"""
Structured calendar intent returned by the language model and the shape
check applied to the raw JSON before it is trusted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

REQUIRED_INTENT_KEYS: Tuple[str, ...] = (
    "action",
    "startDate",
    "endDate",
    "timeStart",
    "timeEnd",
    "title",
    "location",
    "contacts",
    "recurrence",
    "notes",
    "isPrivate",
)

IntentAction = Literal["GET", "CREATE", "UPDATE", "DELETE"]
Recurrence = Literal["none", "daily", "weekly", "monthly"]


@dataclass(frozen=True)
class IntentShapeReport:
    """Difference between the keys the model returned and the required set."""
    missing: Tuple[str, ...] = ()
    unexpected: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.missing


def check_intent_shape(payload: Mapping[str, Any]) -> IntentShapeReport:
    """Compares the top-level keys of ``payload`` with REQUIRED_INTENT_KEYS."""
    missing = tuple(k for k in REQUIRED_INTENT_KEYS if k not in payload)
    unexpected = tuple(k for k in payload if k not in REQUIRED_INTENT_KEYS)
    return IntentShapeReport(missing=missing, unexpected=unexpected)


class CalendarIntent(BaseModel):
    """Typed calendar operation extracted from a chat message. Not executed automatically."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    action: IntentAction
    start_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    end_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    time_start: Optional[str] = Field(None, description="HH:MM, 24h")
    time_end: Optional[str] = Field(None, description="HH:MM, 24h")
    title: Optional[str] = None
    location: Optional[str] = None
    contacts: List[str] = Field(default_factory=list)
    recurrence: Optional[Recurrence] = None
    notes: Optional[str] = None
    is_private: bool = False

    @field_validator("action", mode="before")
    @classmethod
    def _upper_action(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("recurrence", mode="before")
    @classmethod
    def _lower_recurrence(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("contacts", mode="before")
    @classmethod
    def _contacts_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("is_private", mode="before")
    @classmethod
    def _private_flag(cls, value: Any) -> Any:
        return False if value is None else value


__all__ = [
    "REQUIRED_INTENT_KEYS", "IntentShapeReport", "check_intent_shape", "CalendarIntent",
]
