# /app/tempo/core/calendar/store.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Collection, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tempo.core.timeutils import utcnow

from .models import CalendarEvent
from .schemas import SnapshotEvent

log = logging.getLogger(__name__)

# Max ids per DELETE ... IN (...) statement
PRUNE_CHUNK_SIZE = 1000


class CalendarEventStore:
    """
    Persistence of calendar events keyed by (external event id, owner id).

    The store never commits: every method runs inside the caller's
    transaction so that a sync can be applied or rolled back as a whole.
    """

    def __init__(self, db_session: AsyncSession):
        self.db: AsyncSession = db_session

    # ---- Reads ----

    async def get(self, owner_id: int, event_id: str, with_contacts: bool = False) -> Optional[CalendarEvent]:
        stmt = select(CalendarEvent).where(
            CalendarEvent.user_id == owner_id,
            CalendarEvent.event_id == event_id,
        )
        if with_contacts:
            stmt = stmt.options(selectinload(CalendarEvent.contacts)).execution_options(populate_existing=True)
        return await self.db.scalar(stmt)

    async def list_for_owner(self, owner_id: int) -> List[CalendarEvent]:
        """All events of the owner, contacts loaded, ordered by start."""
        stmt = (
            select(CalendarEvent)
            .where(CalendarEvent.user_id == owner_id)
            .options(selectinload(CalendarEvent.contacts))
            .order_by(CalendarEvent.start_date, CalendarEvent.id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def list_event_ids(self, owner_id: int) -> List[str]:
        result = await self.db.scalars(
            select(CalendarEvent.event_id).where(CalendarEvent.user_id == owner_id).order_by(CalendarEvent.event_id)
        )
        return list(result.all())

    # ---- Writes ----

    async def upsert(
        self,
        owner_id: int,
        owner_external_id: str,
        item: SnapshotEvent,
        now: Optional[datetime] = None,
    ) -> CalendarEvent:
        """
        Inserts the event or overwrites every mutable field of the stored one.

        Args:
            owner_id (int): Internal id of the owner.
            owner_external_id (str): Identity subject of the owner (denormalized).
            item (SnapshotEvent): Validated client event.
            now (datetime | None, optional): Timestamp for updated_at and a missing fetchedAt.

        Returns:
            CalendarEvent: The inserted or updated row (flushed).
        """
        now = now or utcnow()
        row = await self.get(owner_id, item.event_id)
        if row is None:
            row = CalendarEvent(event_id=item.event_id, user_id=owner_id)
            self.db.add(row)
        self._apply(row, owner_external_id, item, now)
        await self.db.flush()
        return row

    async def insert(
        self,
        owner_id: int,
        owner_external_id: str,
        item: SnapshotEvent,
        now: Optional[datetime] = None,
    ) -> CalendarEvent:
        """Plain insert. A duplicate natural key surfaces as IntegrityError on flush."""
        row = CalendarEvent(event_id=item.event_id, user_id=owner_id)
        self._apply(row, owner_external_id, item, now or utcnow())
        self.db.add(row)
        await self.db.flush()
        return row

    async def prune(self, owner_id: int, keep_event_ids: Collection[str]) -> int:
        """
        Deletes every event of the owner whose external id is not in
        ``keep_event_ids``. An empty collection deletes all of them.
        Attached contacts go with them (ON DELETE CASCADE).

        The ids to drop are worked out here and deleted in chunks of
        PRUNE_CHUNK_SIZE, so the statement size does not grow with the
        snapshot (asyncpg caps a query at 32767 bind parameters).

        Returns:
            int: Number of deleted events.
        """
        keep = set(keep_event_ids)
        doomed = [eid for eid in await self.list_event_ids(owner_id) if eid not in keep]
        deleted = 0
        for start in range(0, len(doomed), PRUNE_CHUNK_SIZE):
            chunk = doomed[start:start + PRUNE_CHUNK_SIZE]
            result = await self.db.execute(
                delete(CalendarEvent)
                .where(CalendarEvent.user_id == owner_id, CalendarEvent.event_id.in_(chunk))
                .execution_options(synchronize_session=False)
            )
            deleted += result.rowcount or 0
        log.debug("Pruned %d events of owner %d (kept %d ids)", deleted, owner_id, len(keep))
        return deleted

    async def delete(self, owner_id: int, event_id: str) -> int:
        result = await self.db.execute(
            delete(CalendarEvent)
            .where(CalendarEvent.user_id == owner_id, CalendarEvent.event_id == event_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # ---- Helpers ----

    @staticmethod
    def _apply(row: CalendarEvent, owner_external_id: str, item: SnapshotEvent, now: datetime) -> None:
        row.title = item.title
        row.start_date = item.start_date
        row.end_date = item.end_date
        row.is_all_day = item.is_all_day
        row.notes = item.notes
        row.location = item.location
        row.calendar_id = item.calendar_id
        row.calendar_name = item.calendar_name
        row.owner_external_id = owner_external_id
        row.fetched_at = item.fetched_at or now
        row.updated_at = now
