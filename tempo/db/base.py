# /app/tempo/db/base.py

from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tempo.config import settings

log = logging.getLogger(__name__)


# --- Declarative Base ---
class Base(DeclarativeBase):
    pass


# --- Engine & Session factory (process-wide, explicit lifecycle) ---
engine: Optional[AsyncEngine] = None
async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _install_sqlite_hooks(target: AsyncEngine) -> None:
    """
    Makes SQLite behave like the production database for our purposes:
    foreign keys (ON DELETE CASCADE) are enforced and SAVEPOINTs work.
    """

    @event.listens_for(target.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        # The driver must not emit BEGIN on its own; we do it in "begin" below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(target.sync_engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN")


def init_engine(url: Optional[str] = None, **engine_kwargs: Any) -> AsyncEngine:
    """
    Creates the async engine and session factory. Replaces any previous ones
    (the caller is responsible for disposing them first).

    Args:
        url (str | None, optional): Database URL. Defaults to settings.DATABASE_URL.
        **engine_kwargs: Extra keyword arguments for ``create_async_engine``.

    Returns:
        AsyncEngine: The new engine.
    """
    global engine, async_session_factory
    db_url = url or settings.DATABASE_URL
    is_sqlite = db_url.startswith("sqlite")
    if not (is_sqlite and "+aiosqlite" in db_url) and not db_url.startswith("postgresql+asyncpg://"):
        raise ValueError("DATABASE_URL must use an async driver ('postgresql+asyncpg' or 'sqlite+aiosqlite').")

    engine_kwargs.setdefault("echo", settings.DB_ECHO)
    if not is_sqlite:
        engine_kwargs.setdefault("pool_pre_ping", True)

    log.info("Initializing database engine: %s...", db_url[:25])
    engine = create_async_engine(db_url, **engine_kwargs)
    if is_sqlite:
        _install_sqlite_hooks(engine)
    async_session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    return engine


async def dispose_engine() -> None:
    """Closes every pooled connection and forgets the engine."""
    global engine, async_session_factory
    if engine is not None:
        log.info("Disposing database engine.")
        await engine.dispose()
    engine = None
    async_session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Returns the active session factory; ``init_engine`` must have run."""
    if async_session_factory is None:
        raise RuntimeError("Database engine is not initialized; call init_engine() first.")
    return async_session_factory


def _import_models() -> None:
    # Registers every mapped table on Base.metadata.
    import tempo.core.users.models  # noqa: F401
    import tempo.core.calendar.models  # noqa: F401


async def create_db_and_tables() -> None:
    """Creates all tables on the active engine (tests and local dev)."""
    _import_models()
    if engine is None:
        raise RuntimeError("Database engine is not initialized; call init_engine() first.")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.debug("Database tables created.")


async def drop_db_and_tables() -> None:
    """Drops all tables on the active engine."""
    _import_models()
    if engine is None:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    log.debug("Database tables dropped.")


# --- FastAPI dependency with commit ---
async def get_async_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: creates and yields an async session, handling commit/rollback.
    """
    session = get_session_factory()()
    session_id_for_log = id(session)
    try:
        log.debug("get_async_db_session: session %s created, yielding...", session_id_for_log)
        yield session
        await session.commit()
        log.debug("get_async_db_session: session %s committed.", session_id_for_log)
    except SQLAlchemyError:
        log.exception("get_async_db_session: SQLAlchemyError in session %s, rolling back...", session_id_for_log)
        await session.rollback()
        raise
    except Exception:
        log.debug("get_async_db_session: exception in session %s scope, rolling back...", session_id_for_log)
        await session.rollback()
        raise
    finally:
        await session.close()


@contextlib.asynccontextmanager
async def async_session_context() -> AsyncGenerator[AsyncSession, None]:
    session: AsyncSession = get_session_factory()()
    log.debug("Entering async session context %s", id(session))
    try:
        yield session
        await session.commit()
    except Exception:
        log.debug("Rolling back session %s from context due to exception", id(session))
        await session.rollback()
        raise
    finally:
        await session.close()


__all__ = [
    "Base", "AsyncSession",
    "init_engine", "dispose_engine", "get_session_factory",
    "create_db_and_tables", "drop_db_and_tables",
    "get_async_db_session", "async_session_context",
]
