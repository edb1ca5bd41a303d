from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tempo.api.v1.auth import router as auth_router
from tempo.api.v1.calendar import router as calendar_router
from tempo.api.v1.chat import router as chat_router
from tempo.api.v1.health import router as health_router
from tempo.api.v1.users import router as users_router
from tempo.config import settings
from tempo.core.calendar.locks import close_sync_lock_manager
from tempo.core.llm.providers import reset_llm_provider
from tempo.db import base as db_base

# Configure basic logging
logging.basicConfig(level=logging.DEBUG if settings.ENVIRONMENT == "dev" else logging.INFO)
log = logging.getLogger(__name__)

description = """
Calendar assistant backend: full-snapshot calendar sync, event queries and
stats, and a chat endpoint that turns messages into calendar intents.
"""
tags_metadata = [
    {"name": "Authentication", "description": "Sign-in with identity-provider tokens and profile."},
    {"name": "calendar", "description": "Sync, queries, stats and single events."},
    {"name": "users", "description": "User preferences."},
    {"name": "chat", "description": "Natural-language calendar assistant."},
    {"name": "Health", "description": "Liveness and dependency checks."},
]


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    if db_base.engine is None:
        db_base.init_engine()
    log.info("\U0001F680 FastAPI application startup complete.")
    yield
    await close_sync_lock_manager()
    reset_llm_provider()
    await db_base.dispose_engine()
    log.info("FastAPI application shutdown complete.")


app = FastAPI(
    title="Tempo API",
    description=description,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed requests are client errors like any other validation failure.
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"error": "ValidationError", "message": "Invalid request",
                            "details": jsonable_encoder(exc.errors())}},
    )


app.include_router(auth_router)
app.include_router(calendar_router)
app.include_router(users_router)
app.include_router(chat_router)
app.include_router(health_router)

log.info("\U0001F331 FastAPI application configured. Environment: %s", settings.ENVIRONMENT)
