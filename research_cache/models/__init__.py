"""
Database Models

This module contains all SQLAlchemy ORM models for the research cache.

Import Structure:
-----------------
Import models from this module to ensure they're registered with SQLAlchemy:

    from research_cache.models import ScrapedUrl, SearchContentUsage, DeduplicationMetric

This ensures that:
1. Alembic can detect all models for migrations
2. Relationships work correctly
3. Base.metadata.create_all() sees every table
"""

from research_cache.models.scraped_url import (
    ContentType,
    ExtractionMethod,
    ProcessingStatus,
    ScrapedUrl,
)
from research_cache.models.usage import (
    DeduplicationMetric,
    SearchContentUsage,
    UsageType,
)

# Export all models and enums
__all__ = [
    # Content store
    "ScrapedUrl",
    # Usage & metrics
    "SearchContentUsage",
    "DeduplicationMetric",
    # Enums
    "ContentType",
    "ExtractionMethod",
    "ProcessingStatus",
    "UsageType",
]
