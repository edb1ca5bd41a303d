# /app/tempo/core/calendar/sync.py
"""
Full-snapshot calendar sync.

A client sends every event it currently sees; afterwards the server holds
exactly those events for the owner. Events the client stopped reporting are
pruned together with their attached contacts. The whole sync is one
transaction: either every change is visible or none is.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tempo.core.errors import SnapshotValidationError, StorageError, UserNotFoundError
from tempo.core.timeutils import utcnow
from tempo.core.users.models import User

from .locks import MemorySyncLockManager, SyncLockManager
from .schemas import SnapshotEvent, SyncOutcome
from .store import CalendarEventStore

log = logging.getLogger(__name__)


def _describe(exc: PydanticValidationError) -> List[str]:
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "event"
        problems.append(f"{field}: {err.get('msg')}")
    return problems


def validate_snapshot(raw_events: Any) -> List[SnapshotEvent]:
    """
    Validates a whole snapshot before anything touches storage.

    Args:
        raw_events: A list of dicts (wire shape) or SnapshotEvent instances.

    Returns:
        List[SnapshotEvent]: Parsed events in submission order.

    Raises:
        SnapshotValidationError: If the snapshot is not a list or any event is invalid.
            Every invalid index is reported, not only the first one.
    """
    if not isinstance(raw_events, (list, tuple)):
        raise SnapshotValidationError({-1: ["events: must be a list"]})

    parsed: List[SnapshotEvent] = []
    problems: Dict[int, List[str]] = {}
    for index, raw in enumerate(raw_events):
        if isinstance(raw, SnapshotEvent):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            problems[index] = ["event: must be an object"]
            continue
        try:
            parsed.append(SnapshotEvent.model_validate(raw))
        except PydanticValidationError as exc:
            problems[index] = _describe(exc)
    if problems:
        log.info("Rejecting snapshot: %d of %d events invalid", len(problems), len(raw_events))
        raise SnapshotValidationError(problems)
    return parsed


class CalendarSyncReconciler:
    """
    Merges a client snapshot into the event store (upsert + prune).

    Owns its transaction: a fresh session is taken from ``session_factory``
    for every call and committed or rolled back before returning.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lock_manager: Optional[SyncLockManager] = None,
    ):
        self.session_factory = session_factory
        self.locks: SyncLockManager = lock_manager or MemorySyncLockManager()

    # ---- Public business-methods ----

    async def reconcile(
        self,
        owner_id: int,
        owner_external_id: str,
        snapshot_events: Sequence[Any],
    ) -> SyncOutcome:
        """
        Makes the owner's stored events match ``snapshot_events`` exactly.

        Args:
            owner_id (int): Internal id of the owner.
            owner_external_id (str): Identity subject of the owner.
            snapshot_events (Sequence): Complete client snapshot (dicts or SnapshotEvent).

        Returns:
            SyncOutcome: Number of processed snapshot events and of pruned events.

        Raises:
            SnapshotValidationError: Invalid snapshot, nothing written.
            UserNotFoundError: Unknown owner, nothing written.
            SyncBusyError: The owner's lock could not be acquired (redis backend).
            StorageError: The transaction failed and was rolled back.
        """
        events = validate_snapshot(snapshot_events)
        keep_ids = {e.event_id for e in events}
        if len(keep_ids) != len(events):
            log.debug("Snapshot for owner %s has %d duplicate ids; last one wins",
                      owner_id, len(events) - len(keep_ids))

        async with self.locks.hold(owner_id):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        outcome = await self._apply(session, owner_id, owner_external_id, events, keep_ids)
            except SQLAlchemyError as exc:
                log.exception("Sync for owner %s failed, transaction rolled back", owner_id)
                raise StorageError("Calendar sync failed; no changes were applied",
                                   {"ownerId": owner_id}) from exc

        log.info(
            "Synced calendar of owner %s: %d upserted, %d pruned",
            owner_id, outcome.events_upserted, outcome.events_deleted,
        )
        return outcome

    # ---- Internals ----

    async def _apply(
        self,
        session: AsyncSession,
        owner_id: int,
        owner_external_id: str,
        events: List[SnapshotEvent],
        keep_ids: set,
    ) -> SyncOutcome:
        owner = await session.get(User, owner_id)
        if owner is None:
            raise UserNotFoundError(owner_id)

        store = CalendarEventStore(session)
        now = utcnow()
        for item in events:
            await store.upsert(owner_id, owner_external_id, item, now=now)
        deleted = await store.prune(owner_id, keep_ids)
        return SyncOutcome(events_upserted=len(events), events_deleted=deleted)
