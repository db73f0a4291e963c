"""
Alembic Migration Environment

Runs the research cache migrations against settings.DATABASE_URL.

What happens here:
------------------
1. Load settings and point Alembic at DATABASE_URL
2. Import the cache models so Base.metadata knows every table
3. Run migrations offline (emit SQL) or online (async engine + run_sync)

Both PostgreSQL (asyncpg) and SQLite (aiosqlite) URLs work. Batch mode is
enabled so ALTERs on SQLite are rendered as table copies.
"""

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Make research_cache importable when running from a source checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from research_cache.core.config import settings  # noqa: E402
from research_cache.db.base import Base  # noqa: E402

# Registers every table on Base.metadata
from research_cache.models import (  # noqa: E402,F401
    DeduplicationMetric,
    ScrapedUrl,
    SearchContentUsage,
)

# ================================
# Alembic Config Object
# ================================

config = context.config

# DATABASE_URL wins over the placeholder in alembic.ini
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Compared against the live schema by `alembic revision --autogenerate`
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Emit migration SQL without connecting.

    Useful for reviewing DDL before a production deploy:
        alembic upgrade head --sql > upgrade.sql
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Apply migrations on an open (sync-wrapped) connection."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Create a throwaway async engine and run migrations through run_sync()."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Connect to DATABASE_URL and apply pending migrations."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
