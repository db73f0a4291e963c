"""
Database Base Classes and Common Utilities

This module provides the foundation for all database models in the research cache.

Key Concepts:
--------------
1. DeclarativeBase: SQLAlchemy's base class that enables ORM functionality
2. CommonTableAttributes: Shared columns/methods used across all models
3. orm_registry: Central registry that tracks all models and their metadata
4. JSONType: JSON column that becomes JSONB on PostgreSQL

Learning Resources:
- SQLAlchemy Declarative Base: https://docs.sqlalchemy.org/en/20/orm/declarative_config.html
- Type variants: https://docs.sqlalchemy.org/en/20/core/type_api.html#sqlalchemy.types.TypeEngine.with_variant
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, MetaData, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry


# ================================
# Naming Convention for Constraints
# ================================
# Consistent constraint names keep Alembic autogenerate stable across
# PostgreSQL and SQLite.
#
# Format examples:
# - ix_scraped_urls_domain: Index on 'scraped_urls' table, 'domain' column
# - fk_search_content_usage_scraped_url_id_scraped_urls: Foreign key
# - pk_scraped_urls: Primary key on 'scraped_urls' table
convention = {
    "ix": "ix_%(column_0_label)s",  # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",  # Primary key
}

# Create metadata with naming conventions
metadata = MetaData(naming_convention=convention)

# Create ORM registry - this tracks all our models
orm_registry = registry(metadata=metadata)


def utcnow() -> datetime:
    """Timezone-aware current UTC time, used for every timestamp default."""
    return datetime.now(timezone.utc)


# ================================
# Base DeclarativeBase Class
# ================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        class ScrapedUrl(Base):
            __tablename__ = "scraped_urls"
            id: Mapped[int] = mapped_column(primary_key=True)
    """

    # Connect this base to our registry
    registry = orm_registry

    # Use our metadata with naming conventions
    metadata = metadata

    # Type checking: Tell mypy that all models have these attributes
    __tablename__: str


# ================================
# Common Table Attributes Mixin
# ================================
class CommonTableAttributes:
    """
    Mixin that provides common fields and methods to all models.

    Common Fields Added:
    --------------------
    - id: Primary key (auto-incrementing integer)
    - created_at: When the record was created (set once, never changes)
    - updated_at: When the record was last modified (updates automatically)

    All timestamps are timezone-aware UTC.
    """

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing primary key"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    # onupdate fires for ORM flushes and for Core update() statements
    # built against the mapped class
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )

    def __repr__(self) -> str:
        """String representation of the model for debugging."""
        return f"{self.__class__.__name__}(id={self.id})"

    def dict(self) -> dict[str, Any]:
        """
        Convert model instance to dictionary.

        Useful for logging and tests. Result schemas in
        research_cache.schemas are the public serialization surface.
        """
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }


# ================================
# Convenient Base Model
# ================================
class BaseModel(Base, CommonTableAttributes):
    """
    Ready-to-use base class for all models.

    Every model automatically gets:
    - Primary key (id)
    - Creation timestamp (created_at)
    - Update timestamp (updated_at)
    - Useful methods (dict(), __repr__())
    """

    # This is an abstract base class - it won't create its own table
    __abstract__ = True


# ================================
# Column Types
# ================================

# JSONB on PostgreSQL (binary, indexable), plain JSON everywhere else.
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Short strings: names, titles, slugs
String50 = String(50)  # Example: enum-like labels
String100 = String(100)  # Example: country, language
String255 = String(255)  # Example: company name, domain, request id

# Medium strings: descriptions, summaries
String500 = String(500)  # Example: page titles
String1000 = String(1000)  # Example: short summaries

# URLs can exceed the common VARCHAR(255)
String2048 = String(2048)
