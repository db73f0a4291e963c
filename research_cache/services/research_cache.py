"""
Research Cache Facade

Wires the ContentStore, QualityAssessor, ReuseSelector and UsageRecorder
over one session factory, in the order a research request uses them:

    cache = ResearchCache(get_session_factory())

    reuse = await cache.find_reusable("Google", "Software Engineer", request_id=rid)
    cached = await cache.get_cached_content(reuse.urls, context)

    for result in fresh_search_results:          # fetched by the caller
        await cache.ingest(result, context, request_id=rid)

    await cache.usage_recorder.record_usages(rid, [
        UsageEntry(scraped_url_id=e.scraped_url_id) for e in reuse.entries
    ])

Each component can still be used on its own.
"""

from typing import List, Optional, Sequence

from research_cache.core.logging import get_logger
from research_cache.db.session import SessionFactory, get_session_factory
from research_cache.models.usage import UsageType
from research_cache.schemas.quality import QualityWeights
from research_cache.schemas.research import (
    CachedContent,
    ContentUpdate,
    IngestResult,
    ResearchContext,
    ReuseResult,
    SearchResult,
    StoreMetadata,
)
from research_cache.services.content_store import ContentStore
from research_cache.services.extraction import (
    build_structured_content,
    extract_insights,
    extract_questions,
)
from research_cache.services.quality import QualityAssessor
from research_cache.services.reuse_selector import ReuseSelector
from research_cache.services.usage_recorder import UsageRecorder

logger = get_logger(__name__)


class ResearchCache:
    """One entry point over the four cache components."""

    def __init__(
        self,
        session_factory: SessionFactory,
        weights: Optional[QualityWeights] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.content_store = ContentStore(session_factory)
        self.quality_assessor = QualityAssessor(weights)
        self.usage_recorder = UsageRecorder(session_factory, self.content_store)
        self.reuse_selector = ReuseSelector(
            self.content_store,
            self.usage_recorder,
            timeout_seconds=timeout_seconds,
        )

    @classmethod
    def from_settings(cls) -> "ResearchCache":
        """Build against the default engine configured by DATABASE_URL."""
        return cls(get_session_factory())

    async def find_reusable(
        self,
        company: str,
        role: Optional[str] = None,
        country: Optional[str] = None,
        **options,
    ) -> ReuseResult:
        """See ReuseSelector.find_reusable()."""
        return await self.reuse_selector.find_reusable(company, role, country, **options)

    async def drain_metrics(self) -> None:
        """See ReuseSelector.drain_metrics()."""
        await self.reuse_selector.drain_metrics()

    async def get_cached_content(
        self,
        urls: Sequence[str],
        context: ResearchContext,
    ) -> List[CachedContent]:
        """See ContentStore.get_by_urls()."""
        return await self.content_store.get_by_urls(urls, context)

    async def ingest(
        self,
        result: SearchResult,
        context: ResearchContext,
        request_id: Optional[str] = None,
    ) -> IngestResult:
        """
        Classify, score and store one freshly fetched search result.

        When the result carries full content, questions, insights and
        structured facts are extracted and attached, moving the page to
        PROCESSED, and the stored quality score is replaced by the score
        of that content. When request_id is given, a FRESH_SCRAPE usage is
        recorded for the page.

        Raises:
            ContentStoreError: If the page could not be stored
        """
        text = result.content or result.snippet or ""
        content_type = self.quality_assessor.classify_content_type(result.url, result.title, text)
        assessment = self.quality_assessor.assess(text, result.title, result.url, content_type)

        stored = await self.content_store.store(
            result.url,
            context,
            StoreMetadata(
                title=result.title[:500] if result.title else None,
                content_summary=result.snippet[:1000] if result.snippet else None,
                content_type=content_type,
                quality_score=assessment.score,
                extraction_method=result.extraction_method,
                content_source=result.content_source,
            ),
        )

        content_attached = False
        if stored.scraped_url_id is not None and result.content:
            questions = extract_questions(result.content)
            insights = extract_insights(result.content)
            content_attached = await self.content_store.update_content(
                stored.scraped_url_id,
                ContentUpdate(
                    full_content=result.content,
                    extracted_questions=questions,
                    extracted_insights=insights,
                    structured_data=build_structured_content(result.content, questions, insights),
                    content_source=result.content_source,
                    quality_score=assessment.score,
                ),
            )

        if request_id and stored.scraped_url_id is not None:
            await self.usage_recorder.record_usage(
                request_id,
                stored.scraped_url_id,
                UsageType.FRESH_SCRAPE,
                relevance_score=assessment.score,
            )

        logger.info(
            "search_result_ingested",
            url=result.url,
            company=context.company,
            created=stored.created,
            content_type=str(content_type),
            quality_score=assessment.score,
            content_attached=content_attached,
        )

        return IngestResult(
            store=stored,
            content_type=content_type,
            assessment=assessment,
            content_attached=content_attached,
        )
