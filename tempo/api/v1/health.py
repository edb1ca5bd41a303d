# /app/tempo/api/v1/health.py

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tempo.config import settings
from tempo.core.calendar.locks import get_sync_lock_manager
from tempo.db import base as db_base

router = APIRouter(tags=["Health"])
log = logging.getLogger(__name__)


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    out: dict[str, str] = {"status": "ok", "environment": settings.ENVIRONMENT}

    # DB
    if db_base.engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="db not initialized")
    try:
        async with db_base.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        out["db"] = "ok"
    except SQLAlchemyError as exc:
        log.exception("DB health check failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="db error") from exc

    # Sync lock backend (redis only does I/O)
    locks = get_sync_lock_manager()
    try:
        if not await locks.ping():
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="lock backend error")
        out["locks"] = locks.name
    except RedisError as exc:
        log.exception("Redis health check failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="lock backend error") from exc

    return out
