"""
Scraped URL Model

This module contains the content-store model for the research cache.

Models Included:
----------------
1. ScrapedUrl - One previously fetched page, owned by a research context
2. ContentType (Enum) - What kind of page it is
3. ProcessingStatus (Enum) - How far the page got through processing
4. ExtractionMethod (Enum) - How the page was obtained

Database Tables:
----------------
- scraped_urls: Stores pages, their extracted content and quality/usage metadata

Relationships:
--------------
- ScrapedUrl (1) ←→ (Many) SearchContentUsage (see models/usage.py)

Learning Resources:
-------------------
- Unique constraints: https://docs.sqlalchemy.org/en/20/core/constraints.html#unique-constraint
- JSONB in PostgreSQL: https://www.postgresql.org/docs/current/datatype-json.html
"""

import enum
import hashlib
from datetime import datetime
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlsplit

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from research_cache.core.exceptions import InvalidStatusTransition
from research_cache.db.base import (
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
from research_cache.schemas.structured import StructuredContent

if TYPE_CHECKING:
    from research_cache.models.usage import SearchContentUsage


def enum_type(enum_cls: type[enum.Enum]) -> SAEnum:
    """
    Store an enum as its lower-case value in a VARCHAR column.

    native_enum=False avoids a PostgreSQL ENUM type per column, so adding a
    value later is a code change instead of an ALTER TYPE migration.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


# ================================
# Enums
# ================================

class ContentType(str, enum.Enum):
    """
    Kind of page, assigned by QualityAssessor.classify_content_type().

    The type feeds the quality score (interview reviews are worth the most)
    and lets callers split reused content by purpose.
    """

    INTERVIEW_REVIEW = "interview_review"
    COMPANY_INFO = "company_info"
    JOB_POSTING = "job_posting"
    NEWS = "news"
    OTHER = "other"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


class ProcessingStatus(str, enum.Enum):
    """
    Processing status of a stored page.

    Status Flow:
    ------------
    RAW → PROCESSED → ANALYZED (forward only, steps may be skipped)
      ↘       ↓          ↙
             FAILED (terminal, reachable from any other state)

    - RAW: stored from a search result, no full content attached yet
    - PROCESSED: full content, questions and insights attached
    - ANALYZED: content has been consumed by downstream analysis
    - FAILED: extraction or analysis failed; kept for accounting only
    """

    RAW = "raw"
    PROCESSED = "processed"
    ANALYZED = "analyzed"
    FAILED = "failed"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value

    @property
    def rank(self) -> int:
        """Position on the forward path; FAILED sits after everything."""
        return _STATUS_RANK[self]

    def can_transition_to(self, target: "ProcessingStatus") -> bool:
        """
        Check whether moving from this status to `target` is allowed.

        Staying on the same status is allowed (idempotent updates).
        """
        if self is ProcessingStatus.FAILED:
            return target is ProcessingStatus.FAILED
        if target is ProcessingStatus.FAILED:
            return True
        return target.rank >= self.rank


_STATUS_RANK = {
    ProcessingStatus.RAW: 0,
    ProcessingStatus.PROCESSED: 1,
    ProcessingStatus.ANALYZED: 2,
    ProcessingStatus.FAILED: 3,
}


class ExtractionMethod(str, enum.Enum):
    """How the page content was obtained."""

    SEARCH_RESULT = "search_result"  # Raw content returned with a search hit
    DEEP_EXTRACT = "deep_extract"  # Dedicated extraction call for the URL
    MANUAL = "manual"  # Added by an operator

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


# ================================
# Derivation Helpers
# ================================

def hash_url(url: str) -> str:
    """SHA-256 hex digest of the trimmed URL, used as the lookup key."""
    return hashlib.sha256(url.strip().encode("utf-8")).hexdigest()


def extract_domain(url: str) -> str:
    """Lower-cased host of the URL, or 'unknown' when there is none."""
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        host = None
    return host.lower() if host else "unknown"


def company_key(company: str) -> str:
    """Case- and whitespace-insensitive company identity."""
    return " ".join(company.split()).lower()


def count_words(content: Optional[str]) -> int:
    """Whitespace-delimited word count."""
    return len(content.split()) if content else 0


# ================================
# ScrapedUrl Model
# ================================

class ScrapedUrl(BaseModel):
    """
    One page fetched for interview research, owned by a company context.

    Table: scraped_urls
    -------------------
    Each row is a URL first seen while researching a company (optionally a
    role and country). The row carries everything needed to reuse the page
    instead of paying for another search/extraction call:

    - identity: url, url_hash, domain, company_key
    - content: full_content, ai_summary, extracted_questions/insights,
      structured_data (versioned StructuredContent payload)
    - quality: content_quality_score in [0, 1]
    - usage: times_reused, last_reused_at

    Uniqueness:
    -----------
    (url_hash, company_key) is unique. Two research runs racing to insert
    the same page for the same company converge on one row; the loser's
    insert fails the constraint and is treated as "already known".

    Lifecycle:
    ----------
    Created on first fetch, updated when content is attached or the page is
    reused, and only deleted by ContentStore.purge_stale().
    """

    __tablename__ = "scraped_urls"

    # ================================
    # URL Identity
    # ================================

    url: Mapped[str] = mapped_column(
        String2048,
        nullable=False,
        comment="Page URL as returned by the search provider"
    )

    url_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="SHA-256 hex digest of the URL"
    )

    domain: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        index=True,
        comment="Lower-cased host derived from the URL"
    )

    # ================================
    # Owning Research Context
    # ================================

    company_name: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        comment="Company as supplied by the first request that stored this URL"
    )

    company_key: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        comment="Normalized company name used for uniqueness and matching"
    )
    # "Google", " google " and "GOOGLE" all map to "google"

    role_title: Mapped[str | None] = mapped_column(
        String255,
        nullable=True,
        comment="Role researched, NULL for general company research"
    )

    country: Mapped[str | None] = mapped_column(
        String100,
        nullable=True,
        comment="Country researched (optional)"
    )

    # ================================
    # Page Description
    # ================================

    title: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
        comment="Page title"
    )

    content_summary: Mapped[str | None] = mapped_column(
        String1000,
        nullable=True,
        comment="Short summary / search snippet"
    )

    content_type: Mapped[ContentType] = mapped_column(
        enum_type(ContentType),
        nullable=False,
        default=ContentType.OTHER,
        index=True,
        comment="interview_review, company_info, job_posting, news, other"
    )

    extraction_method: Mapped[ExtractionMethod] = mapped_column(
        enum_type(ExtractionMethod),
        nullable=False,
        default=ExtractionMethod.SEARCH_RESULT,
        comment="search_result, deep_extract, manual"
    )

    content_source: Mapped[str] = mapped_column(
        String50,
        nullable=False,
        default="search_api",
        comment="Provider/endpoint that produced the content"
    )

    language: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="en",
        comment="Content language code"
    )

    # ================================
    # Extracted Content
    # ================================

    full_content: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Complete extracted text"
    )
    # NULL until update_content() attaches it; get_by_urls() skips NULL rows

    ai_summary: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="AI-generated summary of the content"
    )

    extracted_questions: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Interview questions found in the content"
    )

    extracted_insights: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Tips and insights found in the content"
    )

    structured_data: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=lambda: StructuredContent().model_dump(),
        comment="Versioned StructuredContent payload"
    )

    word_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Whitespace-delimited word count of full_content"
    )

    # ================================
    # Quality & Processing
    # ================================

    content_quality_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        comment="Heuristic relevance score between 0 and 1"
    )

    processing_status: Mapped[ProcessingStatus] = mapped_column(
        enum_type(ProcessingStatus),
        nullable=False,
        default=ProcessingStatus.RAW,
        index=True,
        comment="raw, processed, analyzed, failed"
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Reason the row was marked failed"
    )

    # ================================
    # Usage & Freshness
    # ================================

    times_reused: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="How many research requests reused this page"
    )
    # Only ever incremented with an atomic UPDATE (ContentStore.apply_reuse_increment)

    first_scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
        comment="When the page was first fetched (UTC)"
    )

    last_reused_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        comment="When the page was last reused (UTC)"
    )

    # ================================
    # Relationships
    # ================================

    usages: Mapped[list["SearchContentUsage"]] = relationship(
        "SearchContentUsage",
        back_populates="scraped_url",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
    # Usage records are only ever read through explicit queries

    # ================================
    # Constraints
    # ================================

    __table_args__ = (
        UniqueConstraint(
            "url_hash",
            "company_key",
            name="uq_scraped_url_company"
        ),
        CheckConstraint(
            "content_quality_score >= 0 AND content_quality_score <= 1",
            name="quality_score_range"
        ),
        CheckConstraint(
            "times_reused >= 0",
            name="times_reused_non_negative"
        ),
        Index(
            "ix_scraped_urls_reuse_lookup",
            "company_key",
            "content_quality_score",
            "times_reused",
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"ScrapedUrl(id={self.id}, company='{self.company_name}', "
            f"url='{self.url[:60]}', quality={self.content_quality_score}, "
            f"status={self.processing_status})"
        )

    @property
    def structured(self) -> StructuredContent:
        """structured_data loaded through its schema."""
        return StructuredContent.from_json(self.structured_data)

    @property
    def has_content(self) -> bool:
        """Check if full content has been attached."""
        return bool(self.full_content)

    def advance_status(self, target: ProcessingStatus) -> None:
        """
        Move processing_status to `target`.

        Raises:
            InvalidStatusTransition: If the move would go backwards or
                leave FAILED
        """
        current = self.processing_status or ProcessingStatus.RAW
        if not current.can_transition_to(target):
            raise InvalidStatusTransition(current.value, target.value)
        self.processing_status = target
