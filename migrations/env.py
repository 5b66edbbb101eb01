from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from thornton_events.db import Base, normalize_url
from thornton_events.models import article, deal, event  # noqa: F401
from thornton_events.utils.config import DATABASE_URL

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    """``alembic -x url=...`` wins over DATABASE_URL, which wins over alembic.ini."""
    url = context.get_x_argument(as_dictionary=True).get("url") or DATABASE_URL
    url = url or config.get_main_option("sqlalchemy.url") or ""
    if not url:
        raise RuntimeError("No database: set DATABASE_URL or pass -x url=...")
    return normalize_url(url)


def configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline(url: str) -> None:
    # emits SQL to stdout; nothing is executed
    configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    # sqlite cannot ALTER most things in place
    configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online(url: str) -> None:
    engine = create_async_engine(url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as conn:
            await conn.run_sync(do_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline(database_url())
else:
    asyncio.run(run_migrations_online(database_url()))
