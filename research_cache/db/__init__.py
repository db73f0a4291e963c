"""Database utilities and session management."""

from research_cache.db.base import (
    Base,
    BaseModel,
    JSONType,
    String50,
    String100,
    String255,
    String500,
    String1000,
    String2048,
    utcnow,
)
from research_cache.db.session import (
    SessionFactory,
    check_db_health,
    close_db,
    create_engine,
    create_session_factory,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "JSONType",
    "utcnow",
    # String types
    "String50",
    "String100",
    "String255",
    "String500",
    "String1000",
    "String2048",
    # Session management
    "SessionFactory",
    "create_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "get_session",
    "init_db",
    "close_db",
    "check_db_health",
]
