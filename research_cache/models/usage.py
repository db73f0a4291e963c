"""
Usage & Metrics Models

Models Included:
----------------
1. SearchContentUsage - One stored page used by one research request
2. DeduplicationMetric - Cache hit/miss sample for one research request
3. UsageType (Enum) - How a page was used

Database Tables:
----------------
- search_content_usage: Append-only usage log, unique per (request_id, scraped_url_id)
- url_deduplication_metrics: Append-only metrics samples

Relationships:
--------------
- ScrapedUrl (1) ←→ (Many) SearchContentUsage
- DeduplicationMetric has no foreign keys; it outlives purged pages
"""

import enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from research_cache.db.base import BaseModel, String255
from research_cache.models.scraped_url import enum_type

if TYPE_CHECKING:
    from research_cache.models.scraped_url import ScrapedUrl


class UsageType(str, enum.Enum):
    """
    How a research request used a stored page.

    - REUSED: served from the cache instead of a provider call
    - FRESH_SCRAPE: fetched from the provider for this request
    - VALIDATION: re-checked against a fresh fetch

    Only REUSED usages bump the page's reuse counter.
    """

    REUSED = "reused"
    FRESH_SCRAPE = "fresh_scrape"
    VALIDATION = "validation"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


# ================================
# SearchContentUsage Model
# ================================

class SearchContentUsage(BaseModel):
    """
    Records that a research request used a stored page.

    Table: search_content_usage
    ---------------------------
    Rows are never updated. The (request_id, scraped_url_id) pair is unique,
    so replaying the same usage is detected by the constraint and the
    page's reuse counter is only bumped once per request.

    Deleting a ScrapedUrl deletes its usage rows (ON DELETE CASCADE).
    """

    __tablename__ = "search_content_usage"

    request_id: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        index=True,
        comment="Identifier of the research request"
    )

    scraped_url_id: Mapped[int] = mapped_column(
        ForeignKey("scraped_urls.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Page that was used"
    )

    usage_type: Mapped[UsageType] = mapped_column(
        enum_type(UsageType),
        nullable=False,
        comment="reused, fresh_scrape, validation"
    )

    relevance_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        comment="Caller-assessed relevance of the page to the request (0-1)"
    )

    contributed_to_analysis: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the page made it into the final analysis"
    )

    scraped_url: Mapped["ScrapedUrl"] = relationship(
        "ScrapedUrl",
        back_populates="usages",
        lazy="noload",
    )

    __table_args__ = (
        UniqueConstraint(
            "request_id",
            "scraped_url_id",
            name="uq_search_content_usage_request_url"
        ),
        CheckConstraint(
            "relevance_score >= 0 AND relevance_score <= 1",
            name="relevance_score_range"
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"SearchContentUsage(id={self.id}, request_id='{self.request_id}', "
            f"scraped_url_id={self.scraped_url_id}, type={self.usage_type})"
        )


# ================================
# DeduplicationMetric Model
# ================================

class DeduplicationMetric(BaseModel):
    """
    One cache-effectiveness sample, written after each reuse lookup.

    Table: url_deduplication_metrics
    --------------------------------
    - cache_hit_count: stored pages returned for the request
    - total_urls_needed: pages the request asked for
    - response_time_ms: lookup latency
    - api_calls_saved: provider calls avoided thanks to the hits

    hit rate = cache_hit_count / total_urls_needed (see get_metrics_summary)
    """

    __tablename__ = "url_deduplication_metrics"

    request_id: Mapped[Optional[str]] = mapped_column(
        String255,
        nullable=True,
        index=True,
        comment="Research request the sample belongs to (optional)"
    )

    cache_hit_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    total_urls_needed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    response_time_ms: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    api_calls_saved: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    __table_args__ = (
        CheckConstraint(
            "cache_hit_count >= 0 AND total_urls_needed >= 0 "
            "AND response_time_ms >= 0 AND api_calls_saved >= 0",
            name="non_negative_counts"
        ),
        Index("ix_url_deduplication_metrics_created_at", "created_at"),
    )

    @property
    def hit_rate(self) -> float:
        """Share of needed pages served from the cache."""
        if not self.total_urls_needed:
            return 0.0
        return self.cache_hit_count / self.total_urls_needed

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"DeduplicationMetric(id={self.id}, hits={self.cache_hit_count}, "
            f"needed={self.total_urls_needed}, ms={self.response_time_ms})"
        )
