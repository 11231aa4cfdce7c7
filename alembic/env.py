"""Alembic environment for MedPath.

The database URL comes from ``MEDPATH_DB_DATABASE_URL`` via DBConfig.
"""

from __future__ import annotations

import asyncio

from alembic import context
from sqlalchemy.ext.asyncio import create_async_engine

from medpath.core.config import DBConfig
from medpath.db.base import Base

import medpath.db.models  # noqa: F401

target_metadata = Base.metadata


def _database_url() -> str:
    url = DBConfig().database_url
    if not url:
        raise RuntimeError("MEDPATH_DB_DATABASE_URL is not set")
    return url


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _do_run_migrations(connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(_database_url())
    async with engine.connect() as connection:
        await connection.run_sync(_do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
