"""
Pydantic schemas for the research cache components.

These schemas define the inputs and results exchanged between the caller's
research workflow and the ContentStore, ReuseSelector and UsageRecorder.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from research_cache.models.scraped_url import (
    ContentType,
    ExtractionMethod,
    ScrapedUrl,
    company_key,
)
from research_cache.models.usage import UsageType
from research_cache.schemas.quality import QualityAssessment
from research_cache.schemas.structured import StructuredContent


# ========================================
# Input Schemas
# ========================================

class ResearchContext(BaseModel):
    """The (company, role, country) a page is researched for."""

    company: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Company being researched",
        examples=["Google"]
    )

    role: Optional[str] = Field(
        None,
        max_length=255,
        description="Role title, if the research is role specific",
        examples=["Software Engineer"]
    )

    country: Optional[str] = Field(
        None,
        max_length=100,
        description="Country the role is based in",
        examples=["US"]
    )

    @field_validator('company')
    @classmethod
    def validate_company(cls, v: str) -> str:
        """Trim the company name and reject blank values."""
        v = v.strip()
        if not v:
            raise ValueError("Company cannot be empty")
        return v

    @field_validator('role', 'country')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank optional fields as absent."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def company_key(self) -> str:
        """Normalized company identity used for matching."""
        return company_key(self.company)


class StoreMetadata(BaseModel):
    """Everything known about a page when it is first stored."""

    title: Optional[str] = Field(None, max_length=500)
    content_summary: Optional[str] = Field(None, max_length=1000)
    content_type: ContentType = ContentType.OTHER
    quality_score: float = Field(
        0.0,
        description="Clamped to [0, 1] on write"
    )
    extraction_method: ExtractionMethod = ExtractionMethod.SEARCH_RESULT
    content_source: str = Field("search_api", max_length=50)
    language: str = Field("en", max_length=10)

    full_content: Optional[str] = None
    ai_summary: Optional[str] = None
    extracted_questions: List[str] = Field(default_factory=list)
    extracted_insights: List[str] = Field(default_factory=list)
    structured_data: Optional[StructuredContent] = None


class ContentUpdate(BaseModel):
    """Freshly extracted content attached to an existing entry."""

    full_content: str
    extracted_questions: List[str] = Field(default_factory=list)
    extracted_insights: List[str] = Field(default_factory=list)
    ai_summary: Optional[str] = None
    structured_data: Optional[StructuredContent] = None
    content_source: Optional[str] = Field(None, max_length=50)
    quality_score: Optional[float] = Field(
        None,
        description="Re-assessed score for the new content; clamped to [0, 1] on write"
    )


class SearchResult(BaseModel):
    """A page returned by the external search/extraction provider."""

    url: str = Field(..., min_length=1, max_length=2048)
    title: Optional[str] = None
    snippet: Optional[str] = Field(
        None,
        description="Short description shown by the provider"
    )
    content: Optional[str] = Field(
        None,
        description="Full page text, when the provider returned it"
    )
    extraction_method: ExtractionMethod = ExtractionMethod.SEARCH_RESULT
    content_source: str = Field("search_api", max_length=50)


class UsageEntry(BaseModel):
    """One page a request drew upon, for UsageRecorder.record_usages()."""

    scraped_url_id: int
    kind: UsageType = UsageType.REUSED
    relevance_score: float = Field(0.0, ge=0.0, le=1.0)
    contributed_to_analysis: bool = True


class ReuseCriteria(BaseModel):
    """Filters for ContentStore.query_reusable()."""

    model_config = ConfigDict(frozen=True)

    company: str = Field(..., min_length=1)
    role: Optional[str] = None
    min_quality_score: float = Field(0.3, ge=0.0, le=1.0)
    max_age_days: int = Field(30, ge=0)
    limit: int = Field(20, ge=0)

    @property
    def company_key(self) -> str:
        """Normalized company identity used for matching."""
        return company_key(self.company)


# ========================================
# Result Schemas
# ========================================

class StoreResult(BaseModel):
    """
    Outcome of ContentStore.store().

    created=False means the (url, company) pair was already stored;
    scraped_url_id then points at the existing row when it could be found.
    """

    scraped_url_id: Optional[int] = None
    created: bool = False


class CachedContent(BaseModel):
    """Stored content returned by ContentStore.get_by_urls()."""

    id: int
    url: str
    domain: str
    title: Optional[str] = None
    content_summary: Optional[str] = None
    content_type: ContentType
    full_content: str
    ai_summary: Optional[str] = None
    extracted_questions: List[str] = Field(default_factory=list)
    extracted_insights: List[str] = Field(default_factory=list)
    structured: StructuredContent = Field(default_factory=StructuredContent)
    quality_score: float
    times_reused: int
    word_count: int
    first_scraped_at: datetime

    @classmethod
    def from_model(cls, row: ScrapedUrl) -> "CachedContent":
        """Build from a loaded ScrapedUrl row."""
        return cls(
            id=row.id,
            url=row.url,
            domain=row.domain,
            title=row.title,
            content_summary=row.content_summary,
            content_type=row.content_type,
            full_content=row.full_content or "",
            ai_summary=row.ai_summary,
            extracted_questions=list(row.extracted_questions or []),
            extracted_insights=list(row.extracted_insights or []),
            structured=row.structured,
            quality_score=row.content_quality_score,
            times_reused=row.times_reused,
            word_count=row.word_count,
            first_scraped_at=row.first_scraped_at,
        )


class ReusableUrl(BaseModel):
    """One candidate returned by the reuse query."""

    scraped_url_id: int
    url: str
    domain: str
    content_type: ContentType
    quality_score: float
    times_reused: int
    first_scraped_at: datetime


class ReuseResult(BaseModel):
    """
    Outcome of ReuseSelector.find_reusable().

    `degraded` is True when the lookup timed out or failed and an empty
    result was returned so fresh research can proceed.
    """

    urls: List[str] = Field(default_factory=list)
    excluded_domains: List[str] = Field(default_factory=list)
    total_count: int = 0
    entries: List[ReusableUrl] = Field(default_factory=list)
    degraded: bool = False

    @classmethod
    def empty(cls, degraded: bool = False) -> "ReuseResult":
        """Result with nothing to reuse."""
        return cls(degraded=degraded)


class RecordOutcome(BaseModel):
    """
    Outcome of a best-effort write by the UsageRecorder.

    Recording never raises. Callers may inspect or discard this value.
    """

    ok: bool
    skipped: bool = False
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "RecordOutcome":
        return cls(ok=True)

    @classmethod
    def duplicate(cls) -> "RecordOutcome":
        return cls(ok=True, skipped=True)

    @classmethod
    def failure(cls, error: str) -> "RecordOutcome":
        return cls(ok=False, error=error)


class IngestResult(BaseModel):
    """Outcome of ResearchCache.ingest() for one search result."""

    store: StoreResult
    content_type: ContentType
    assessment: QualityAssessment
    content_attached: bool = False


class DeduplicationMetricsSummary(BaseModel):
    """Aggregate view over url_deduplication_metrics samples."""

    since: datetime
    sample_count: int = 0
    total_cache_hits: int = 0
    total_urls_needed: int = 0
    cache_hit_rate: float = Field(0.0, ge=0.0)
    api_calls_saved: int = 0
    avg_response_time_ms: float = 0.0
    max_response_time_ms: int = 0


class ContentStoreStats(BaseModel):
    """Counts and averages over stored pages."""

    total_urls: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_content_type: Dict[str, int] = Field(default_factory=dict)
    average_quality: float = 0.0
    total_reuses: int = 0
