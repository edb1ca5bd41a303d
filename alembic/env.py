# /app/alembic/env.py

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

# Alembic config object, reads alembic.ini
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# --- Model metadata ---
from tempo.db.base import Base

# Every module holding models must be imported so that autogenerate sees it
import tempo.core.users.models  # noqa
import tempo.core.calendar.models  # noqa

target_metadata = Base.metadata


def _database_url() -> str:
    """alembic.ini wins; otherwise the application's DATABASE_URL."""
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    from tempo.config import settings
    return settings.DATABASE_URL


def _async_url(db_url: str) -> str:
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if db_url.startswith("postgresql+psycopg2://"):
        return db_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    if db_url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        return db_url
    if db_url.startswith("sqlite://"):
        return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    raise ValueError(f"Unsupported DB URL scheme for async operation: {db_url}")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (emit SQL without a connection)."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    # Short-lived operations, no pooling
    connectable = create_async_engine(_async_url(_database_url()), poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
