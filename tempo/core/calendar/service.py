# /app/tempo/core/calendar/service.py

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tempo.core.errors import DuplicateEventError, EventNotFoundError, StorageError, ValidationError
from tempo.core.timeutils import as_utc, utcnow
from tempo.core.users.models import User
from tempo.core.users.service import UsersService

from .contacts import EventContactStore, contact_to_out
from .models import CalendarEvent
from .schemas import CalendarStats, ContactIn, EventOut, SnapshotEvent
from .store import CalendarEventStore

log = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


def event_to_out(row: CalendarEvent, contacts: Optional[Iterable] = None) -> EventOut:
    contacts = row.contacts if contacts is None else contacts
    return EventOut(
        id=row.event_id,
        title=row.title,
        start_date=as_utc(row.start_date),
        end_date=as_utc(row.end_date),
        is_all_day=row.is_all_day,
        notes=row.notes,
        location=row.location,
        calendar_id=row.calendar_id,
        calendar_name=row.calendar_name,
        user_id=row.owner_external_id,
        fetched_at=as_utc(row.fetched_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        attached_contacts=[contact_to_out(c) for c in contacts],
    )


def filter_events(
    events: Iterable[EventOut],
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    calendar_id: Optional[str] = None,
) -> List[EventOut]:
    """In-memory narrowing: start >= start_date, end <= end_date, exact calendar id."""
    start_date, end_date = as_utc(start_date), as_utc(end_date)
    selected = []
    for ev in events:
        if start_date is not None and ev.start_date < start_date:
            continue
        if end_date is not None and ev.end_date > end_date:
            continue
        if calendar_id is not None and ev.calendar_id != calendar_id:
            continue
        selected.append(ev)
    return selected


def compute_stats(events: Iterable[EventOut], now: Optional[datetime] = None) -> CalendarStats:
    """Counts per calendar name plus upcoming (start strictly after now) vs. past."""
    now = as_utc(now) or utcnow()
    events = list(events)
    calendars = Counter(ev.calendar_name or UNCATEGORIZED for ev in events)
    upcoming = sum(1 for ev in events if ev.start_date > now)
    return CalendarStats(
        total_events=len(events),
        calendars=dict(calendars),
        upcoming_events=upcoming,
        past_events=len(events) - upcoming,
    )


class CalendarService:
    """
    Read side of the calendar plus single-event create/delete.
    Works inside the request session; the caller commits.
    """

    def __init__(self, db_session: AsyncSession):
        self.db: AsyncSession = db_session
        self.events = CalendarEventStore(db_session)
        self.contacts = EventContactStore(db_session)
        self.users = UsersService(db_session)

    async def _owner(self, owner_external_id: str) -> User:
        return await self.users.require_by_external_id(owner_external_id)

    # ---- Queries ----

    async def list_events(
        self,
        owner_external_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        calendar_id: Optional[str] = None,
    ) -> List[EventOut]:
        """
        Returns the owner's events (contacts inlined) narrowed by the optional filters.

        Args:
            owner_external_id (str): Identity subject of the owner.
            start_date (datetime | None): Keep events starting at or after this instant.
            end_date (datetime | None): Keep events ending at or before this instant.
            calendar_id (str | None): Keep events of this calendar only.

        Returns:
            List[EventOut]: Events ordered by start.
        """
        owner = await self._owner(owner_external_id)
        rows = await self.events.list_for_owner(owner.id)
        events = filter_events((event_to_out(r) for r in rows), start_date, end_date, calendar_id)
        log.debug("Listed %d of %d events for %s", len(events), len(rows), owner_external_id)
        return events

    async def upcoming_events(self, owner_external_id: str, days: int = 7,
                              now: Optional[datetime] = None) -> List[EventOut]:
        if days < 1:
            raise ValidationError("days must be a positive integer")
        now = as_utc(now) or utcnow()
        return await self.list_events(owner_external_id, start_date=now, end_date=now + timedelta(days=days))

    async def compute_stats(self, owner_external_id: str, now: Optional[datetime] = None) -> CalendarStats:
        return compute_stats(await self.list_events(owner_external_id), now=now)

    async def get_event(self, owner_external_id: str, event_id: str) -> EventOut:
        owner = await self._owner(owner_external_id)
        row = await self.events.get(owner.id, event_id, with_contacts=True)
        if row is None:
            raise EventNotFoundError(event_id)
        return event_to_out(row)

    # ---- Single-event writes ----

    async def create_event(
        self,
        owner_external_id: str,
        event: SnapshotEvent,
        contacts: Iterable[ContactIn] = (),
    ) -> EventOut:
        """
        Creates one event and attaches its contacts in the same transaction.

        Raises:
            DuplicateEventError: The owner already has an event with this id.
            StorageError: The insert failed for another reason.
        """
        owner = await self._owner(owner_external_id)
        if await self.events.get(owner.id, event.event_id) is not None:
            raise DuplicateEventError(event.event_id)
        try:
            async with self.db.begin_nested():
                row = await self.events.insert(owner.id, owner.external_id, event)
                attached = await self.contacts.attach_all(row.id, contacts)
        except IntegrityError as exc:
            raise DuplicateEventError(event.event_id) from exc
        except SQLAlchemyError as exc:
            log.exception("Failed to create event %s for %s", event.event_id, owner_external_id)
            raise StorageError("Could not create event", {"eventId": event.event_id}) from exc
        await self.db.refresh(row)
        log.info("Created event %s with %d contacts for user %s", row.event_id, len(attached), owner.id)
        return event_to_out(row, attached)

    async def delete_event(self, owner_external_id: str, event_id: str) -> None:
        """Deletes one event (and its contacts). Not-found if nothing was removed."""
        owner = await self._owner(owner_external_id)
        try:
            removed = await self.events.delete(owner.id, event_id)
        except SQLAlchemyError as exc:
            log.exception("Failed to delete event %s for %s", event_id, owner_external_id)
            raise StorageError("Could not delete event", {"eventId": event_id}) from exc
        if removed == 0:
            raise EventNotFoundError(event_id)
        log.info("Deleted event %s of user %s", event_id, owner.id)
