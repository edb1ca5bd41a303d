# /app/tempo/api/v1/users.py

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tempo.api.v1.errors import to_http_exception
from tempo.core.auth.security import get_current_user
from tempo.core.calendar.schemas import CamelModel
from tempo.core.errors import TempoError
from tempo.core.users.models import User
from tempo.core.users.service import UsersService
from tempo.db.base import get_async_db_session

router = APIRouter(prefix="/v1/users", tags=["users"], dependencies=[Depends(get_current_user)])
log = logging.getLogger(__name__)


class CalendarPreferences(CamelModel):
    calendar_ids: List[str]


@router.get("/calendar-preferences", response_model=CalendarPreferences, summary="Calendars selected for sync")
async def read_calendar_preferences(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db_session),
) -> CalendarPreferences:
    try:
        ids = await UsersService(db).get_calendar_preferences(current_user.external_id)
    except TempoError as e:
        raise to_http_exception(e) from e
    return CalendarPreferences(calendar_ids=ids)


@router.put("/calendar-preferences", response_model=CalendarPreferences, summary="Replace selected calendars")
async def replace_calendar_preferences(
    payload: CalendarPreferences = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db_session),
) -> CalendarPreferences:
    try:
        ids = await UsersService(db).replace_calendar_preferences(current_user.external_id, payload.calendar_ids)
    except TempoError as e:
        raise to_http_exception(e) from e
    return CalendarPreferences(calendar_ids=ids)
