"""
Database Session Management

This module handles the database connection lifecycle and session management.

Key Concepts:
--------------
1. Engine: The core of SQLAlchemy's database communication
2. Session factory: Produces one AsyncSession per unit of work
3. Connection Pooling: Reusing database connections for performance

Components never reach for a global client. They receive a session factory
in their constructor:

    factory = get_session_factory()
    store = ContentStore(factory)

Tests build their own engine/factory (see tests/conftest.py) and inject it
the same way.

Learning Resources:
- SQLAlchemy Engine: https://docs.sqlalchemy.org/en/20/core/engines.html
- Async Sessions: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from collections.abc import AsyncGenerator
from typing import Any, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from research_cache.core.config import settings
from research_cache.core.logging import get_logger

logger = get_logger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


# ================================
# Database Engine Configuration
# ================================

def get_engine_config(database_url: Optional[str] = None) -> dict[str, Any]:
    """
    Configure the database engine based on environment and driver.

    Pool Types:
    -----------
    1. AsyncAdaptedQueuePool (development/production on PostgreSQL):
       - Keeps DB_POOL_SIZE connections open, DB_MAX_OVERFLOW extra on demand
    2. NullPool (testing/staging, and always for SQLite):
       - New connection per checkout, closed immediately after use

    Returns:
        Keyword arguments for create_async_engine()
    """
    url = database_url or settings.DATABASE_URL

    config: dict[str, Any] = {
        "echo": settings.DB_ECHO,
        # Test connection health before using
        "pool_pre_ping": True,
    }

    if url.startswith("sqlite"):
        logger.info("configuring_database_engine", driver="aiosqlite", pool_type="NullPool")
        config.update({
            "poolclass": NullPool,
            "connect_args": {"check_same_thread": False},
        })
        return config

    config.update({
        # Recycle connections after 1 hour
        "pool_recycle": 3600,
        "pool_timeout": 30,
        "connect_args": {
            "server_settings": {
                "application_name": settings.APP_NAME,
            }
        },
    })

    if settings.is_development or settings.is_production:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
        config.update({
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
        })
        if settings.is_production:
            config["pool_recycle"] = 7200  # 2 hours
    else:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_type="NullPool",
        )
        config.update({
            "poolclass": NullPool,
        })

    return config


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_engine(database_url: Optional[str] = None, **overrides: Any) -> AsyncEngine:
    """
    Create an async database engine.

    Args:
        database_url: Defaults to settings.DATABASE_URL
        **overrides: Extra create_async_engine() arguments (tests pass poolclass)

    Returns:
        AsyncEngine: The database engine instance
    """
    url = database_url or settings.DATABASE_URL
    engine_config = get_engine_config(url)
    engine_config.update(overrides)

    engine = create_async_engine(url, **engine_config)

    if url.startswith("sqlite"):
        _enable_sqlite_foreign_keys(engine)

    logger.info(
        "database_engine_created",
        dialect=engine.dialect.name,
        pool_size=engine_config.get("pool_size", "NullPool"),
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    """
    Build the session factory injected into every component.

    expire_on_commit=False keeps loaded rows readable after commit, so
    services can return ORM-backed values after their transaction ends.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


# ================================
# Default Engine / Factory
# ================================
# Created lazily so importing the package never opens a connection pool.

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[SessionFactory] = None


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_session_factory() -> SessionFactory:
    """Return the process-wide session factory, creating it on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session from the default factory, rolling back on error.

    Yields:
        AsyncSession: A database session for one unit of work
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception as e:
            logger.error(
                "database_session_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            await session.rollback()
            raise


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Verify the connection and, outside production, create missing tables.

    Production schemas are managed with Alembic (see alembic/).
    """
    engine = engine or get_engine()
    logger.info("initializing_database")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("database_connection_successful")

        if not settings.is_production:
            # Import models so they are registered on Base.metadata
            import research_cache.models  # noqa: F401
            from research_cache.db.base import Base

            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("database_tables_created")

    except Exception as e:
        logger.error(
            "database_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise


async def close_db() -> None:
    """Dispose of the default engine's connection pool."""
    global _engine, _session_factory
    if _engine is None:
        return

    logger.info("closing_database_connections")

    try:
        await _engine.dispose()
        logger.info("database_connections_closed")

    except Exception as e:
        logger.error(
            "database_closure_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        # Don't raise - we're shutting down anyway

    finally:
        _engine = None
        _session_factory = None


async def check_db_health(engine: Optional[AsyncEngine] = None) -> bool:
    """
    Check if the database is healthy and responsive.

    Returns:
        bool: True if database is healthy, False otherwise
    """
    try:
        async with (engine or get_engine()).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
