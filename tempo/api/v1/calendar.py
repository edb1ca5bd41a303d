# /app/tempo/api/v1/calendar.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tempo.api.v1.errors import to_http_exception
from tempo.core.auth.security import get_current_user
from tempo.core.calendar.locks import get_sync_lock_manager
from tempo.core.calendar.schemas import CalendarStats, CamelModel, CreateEventRequest, EventOut
from tempo.core.calendar.service import CalendarService
from tempo.core.calendar.sync import CalendarSyncReconciler
from tempo.core.errors import OwnershipError, TempoError, ValidationError
from tempo.core.timeutils import isoformat, utcnow
from tempo.core.users.models import User
from tempo.db.base import get_async_db_session, get_session_factory

router = APIRouter(
    prefix="/v1/calendar",
    tags=["calendar"],
    dependencies=[Depends(get_current_user)],
)
log = logging.getLogger(__name__)

SYNC_TYPE = "full_sync_with_cleanup"


# --- Response models ---
class SyncResponse(CamelModel):
    message: str
    events_count: int
    events_upserted: int
    events_deleted: int
    timestamp: str
    sync_type: str = SYNC_TYPE


class EventsResponse(CamelModel):
    events: List[EventOut]
    count: int


class EventResponse(CamelModel):
    event: EventOut
    source: str = "backend"


# --- Dependencies ---
def get_sync_reconciler() -> CalendarSyncReconciler:
    return CalendarSyncReconciler(get_session_factory(), get_sync_lock_manager())


def get_calendar_service(db: AsyncSession = Depends(get_async_db_session)) -> CalendarService:
    return CalendarService(db)


# --- Sync ---
@router.post(
    "/sync",
    response_model=SyncResponse,
    summary="Full calendar sync",
    description="Upserts every event of the snapshot and removes events the client no longer reports.",
)
async def sync_calendar(
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db_session),
    reconciler: CalendarSyncReconciler = Depends(get_sync_reconciler),
) -> SyncResponse:
    try:
        events = payload.get("events")
        user_id = payload.get("userId")
        if not isinstance(events, list):
            raise ValidationError("events must be a list")
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("userId is required")
        if user_id != current_user.external_id:
            raise OwnershipError("userId does not match the authenticated user", {"userId": user_id})

        owner_id, owner_external_id = current_user.id, current_user.external_id
        # The reconciler runs its own transaction; release the request one first.
        await db.commit()
        log.info("[API /calendar/sync] User '%s' syncing %d events", owner_external_id, len(events))
        outcome = await reconciler.reconcile(owner_id, owner_external_id, events)
    except TempoError as e:
        raise to_http_exception(e) from e

    return SyncResponse(
        message="Calendar events synced successfully",
        events_count=outcome.events_upserted,
        events_upserted=outcome.events_upserted,
        events_deleted=outcome.events_deleted,
        timestamp=isoformat(utcnow()),
    )


# --- Queries ---
@router.get("/events", response_model=EventsResponse, summary="List events with optional filters")
async def list_events(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    calendar_id: Optional[str] = Query(None, alias="calendarId"),
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
) -> EventsResponse:
    try:
        events = await service.list_events(current_user.external_id, start_date, end_date, calendar_id)
    except TempoError as e:
        raise to_http_exception(e) from e
    return EventsResponse(events=events, count=len(events))


@router.get("/events/range", response_model=EventsResponse, summary="Events inside a date range")
async def list_events_in_range(
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    calendar_id: Optional[str] = Query(None, alias="calendarId"),
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
) -> EventsResponse:
    try:
        if end_date < start_date:
            raise ValidationError("endDate must not be before startDate")
        events = await service.list_events(current_user.external_id, start_date, end_date, calendar_id)
    except TempoError as e:
        raise to_http_exception(e) from e
    return EventsResponse(events=events, count=len(events))


@router.get("/upcoming", response_model=EventsResponse, summary="Events in the next N days")
async def upcoming_events(
    days: int = Query(7, ge=1, le=366),
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
) -> EventsResponse:
    try:
        events = await service.upcoming_events(current_user.external_id, days=days)
    except TempoError as e:
        raise to_http_exception(e) from e
    return EventsResponse(events=events, count=len(events))


@router.get("/stats", response_model=CalendarStats, summary="Event counts per calendar, upcoming and past")
async def calendar_stats(
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
) -> CalendarStats:
    try:
        return await service.compute_stats(current_user.external_id)
    except TempoError as e:
        raise to_http_exception(e) from e


# --- Single events ---
@router.get("/events/{event_id}", response_model=EventResponse, summary="One event with its contacts")
async def get_event(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
) -> EventResponse:
    try:
        event = await service.get_event(current_user.external_id, event_id)
    except TempoError as e:
        raise to_http_exception(e) from e
    return EventResponse(event=event)


@router.post(
    "/events",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create one event with attached contacts",
)
async def create_event(
    payload: CreateEventRequest = Body(...),
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
) -> EventResponse:
    try:
        event = await service.create_event(current_user.external_id, payload.event, payload.attached_contacts)
    except TempoError as e:
        raise to_http_exception(e) from e
    return EventResponse(event=event)


class DeleteResponse(CamelModel):
    message: str
    event_id: str


@router.delete("/events/{event_id}", response_model=DeleteResponse, summary="Delete one event")
async def delete_event(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
) -> DeleteResponse:
    try:
        await service.delete_event(current_user.external_id, event_id)
    except TempoError as e:
        raise to_http_exception(e) from e
    return DeleteResponse(message="Event deleted successfully", event_id=event_id)
