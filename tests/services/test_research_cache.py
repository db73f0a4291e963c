"""
Tests for the ResearchCache facade: the ingest -> reuse -> record loop.
"""

import pytest
import pytest_asyncio
from sqlalchemy import select

from research_cache.models import ContentType, ProcessingStatus, SearchContentUsage, UsageType
from research_cache.schemas.research import SearchResult, UsageEntry
from research_cache.services.research_cache import ResearchCache

REVIEW_TEXT = " ".join(
    [
        "I went through the interview process at Google for a software engineer role.",
        "There were 4 rounds in total, starting with a phone screen.",
        "The interviewer asked me to design a rate limiter, then a coding interview on graphs.",
        "Q1: How would you design a distributed rate limiter?",
        "Tip: Always talk through trade-offs before writing code.",
        "The hiring manager chat was relaxed. Offer extended a week later.",
    ]
    * 4
)


@pytest_asyncio.fixture
async def cache(session_factory):
    research_cache = ResearchCache(session_factory)
    yield research_cache
    await research_cache.drain_metrics()


@pytest.fixture
def review_result() -> SearchResult:
    return SearchResult(
        url="https://www.glassdoor.com/Interview/Google-Software-Engineer-Interview-Questions",
        title="Google Software Engineer Interview Questions",
        snippet="Interview reviews from Google engineers",
        content=REVIEW_TEXT,
    )


@pytest.mark.asyncio
class TestIngest:

    async def test_ingest_with_content(self, cache, review_result, google_context, load_row):
        outcome = await cache.ingest(review_result, google_context)

        assert outcome.store.created is True
        assert outcome.content_type == ContentType.INTERVIEW_REVIEW
        assert outcome.content_attached is True
        assert 0.5 < outcome.assessment.score <= 1.0

        row = await load_row(outcome.store.scraped_url_id)
        assert row.processing_status == ProcessingStatus.PROCESSED
        assert row.content_quality_score == pytest.approx(outcome.assessment.score)
        assert row.content_summary == "Interview reviews from Google engineers"
        assert "How would you design a distributed rate limiter?" in row.extracted_questions
        assert "Always talk through trade-offs before writing code" in row.extracted_insights
        assert row.structured.interview_rounds == 4
        assert row.structured.mentions_offer is True
        assert row.word_count == len(REVIEW_TEXT.split())

    async def test_snippet_only_result_stays_raw(self, cache, google_context, load_row):
        outcome = await cache.ingest(
            SearchResult(url="https://example.com/post", title="Notes", snippet="Short snippet"),
            google_context,
        )

        assert outcome.content_attached is False
        assert outcome.assessment.short_circuited is True
        row = await load_row(outcome.store.scraped_url_id)
        assert row.processing_status == ProcessingStatus.RAW
        assert row.full_content is None

    async def test_reingest_returns_existing(self, cache, review_result, google_context):
        first = await cache.ingest(review_result, google_context)
        second = await cache.ingest(review_result, google_context)

        assert second.store.created is False
        assert second.store.scraped_url_id == first.store.scraped_url_id

    async def test_reingest_with_content_refreshes_score(self, cache, review_result, google_context, load_row):
        snippet_only = await cache.ingest(review_result.model_copy(update={"content": None}), google_context)
        with_content = await cache.ingest(review_result, google_context)

        assert with_content.store.created is False
        assert snippet_only.assessment.short_circuited is True
        assert with_content.assessment.score > snippet_only.assessment.score

        row = await load_row(with_content.store.scraped_url_id)
        assert row.full_content == REVIEW_TEXT
        assert row.content_quality_score == pytest.approx(with_content.assessment.score)

    async def test_fresh_scrape_usage_recorded(self, cache, review_result, google_context, session_factory, load_row):
        outcome = await cache.ingest(review_result, google_context, request_id="req-1")

        async with session_factory() as session:
            [usage] = (await session.execute(select(SearchContentUsage))).scalars().all()
        assert usage.request_id == "req-1"
        assert usage.usage_type == UsageType.FRESH_SCRAPE
        assert (await load_row(outcome.store.scraped_url_id)).times_reused == 0


@pytest.mark.asyncio
class TestResearchLoop:

    async def test_ingest_then_reuse(self, cache, review_result, google_context, load_row):
        ingested = await cache.ingest(review_result, google_context, request_id="req-1")

        reuse = await cache.find_reusable("Google", "software engineer", request_id="req-2")
        assert reuse.urls == [review_result.url]

        cached = await cache.get_cached_content(reuse.urls, google_context)
        assert [c.id for c in cached] == [ingested.store.scraped_url_id]
        assert cached[0].full_content == REVIEW_TEXT

        outcomes = await cache.usage_recorder.record_usages(
            "req-2",
            [UsageEntry(scraped_url_id=e.scraped_url_id, relevance_score=0.8) for e in reuse.entries],
        )
        assert all(o.ok for o in outcomes)
        assert (await load_row(ingested.store.scraped_url_id)).times_reused == 1

        await cache.drain_metrics()
        summary = await cache.usage_recorder.get_metrics_summary()
        assert summary.sample_count == 1
        assert summary.total_cache_hits == 1
