# tempo/core/calendar/schemas.py
"""
Pydantic schemas of calendar events.

Used in:
    * tempo/core/calendar/sync.py       ― validation of a sync snapshot
    * tempo/core/calendar/service.py    ― read models (EventOut, CalendarStats)
    * tempo/api/v1/calendar.py          ― public REST endpoints

Wire names are camelCase (``startDate``, ``attachedContacts``); Python
attributes stay snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tempo.core.timeutils import as_utc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --------------------------------------------------------------------------- #
#                                   input                                     #
# --------------------------------------------------------------------------- #
class SnapshotEvent(CamelModel):
    """One client-observed event of a sync snapshot (also used for single creation)."""

    event_id: str = Field(..., alias="id", description="Client-side event identifier")
    title: str
    start_date: datetime
    end_date: datetime
    is_all_day: bool = False
    calendar_id: Optional[str] = None
    calendar_name: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = None
    fetched_at: Optional[datetime] = None

    @field_validator("event_id", "title")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("start_date", "end_date", "fetched_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class ContactIn(CamelModel):
    contact_id: str = Field(..., alias="id")
    name: str
    emails: Union[List[str], str, None] = None
    phone_numbers: Union[List[str], str, None] = None


class CreateEventRequest(CamelModel):
    event: SnapshotEvent
    attached_contacts: List[ContactIn] = Field(default_factory=list)


# --------------------------------------------------------------------------- #
#                                   output                                    #
# --------------------------------------------------------------------------- #
class ContactOut(CamelModel):
    id: str
    name: str
    emails: List[str] = Field(default_factory=list)
    phone_numbers: List[str] = Field(default_factory=list)


class EventOut(CamelModel):
    id: str
    title: str
    start_date: datetime
    end_date: datetime
    is_all_day: bool
    notes: Optional[str] = None
    location: Optional[str] = None
    calendar_id: Optional[str] = None
    calendar_name: Optional[str] = None
    user_id: str
    fetched_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    attached_contacts: List[ContactOut] = Field(default_factory=list)


class CalendarStats(CamelModel):
    total_events: int
    calendars: Dict[str, int]
    upcoming_events: int
    past_events: int


@dataclass(frozen=True)
class SyncOutcome:
    """Result of one reconcile call."""
    events_upserted: int
    events_deleted: int


__all__: list[str] = [
    "CamelModel", "SnapshotEvent", "ContactIn", "CreateEventRequest",
    "ContactOut", "EventOut", "CalendarStats", "SyncOutcome",
]
