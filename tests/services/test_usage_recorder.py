"""
Tests for UsageRecorder.

This test module verifies:
1. REUSED usages bump the reuse counter exactly once per (request, page)
2. Other usage kinds are recorded without touching the counter
3. Failures come back as RecordOutcome instead of exceptions
4. Metrics samples and their summary
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select, update

from research_cache.core.exceptions import ContentStoreError
from research_cache.db.base import utcnow
from research_cache.models import DeduplicationMetric, SearchContentUsage, UsageType
from research_cache.schemas.research import UsageEntry
from research_cache.services.usage_recorder import UsageRecorder


async def usage_rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(SearchContentUsage).order_by(SearchContentUsage.id))
        return list(result.scalars().all())


@pytest.mark.asyncio
class TestRecordUsage:

    async def test_reused_bumps_counter(self, usage_recorder, seed_url, load_row, session_factory):
        scraped_url_id = await seed_url("https://a.com/1", quality=0.8)

        outcome = await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.REUSED, relevance_score=0.9)

        assert outcome.ok is True
        assert outcome.skipped is False
        row = await load_row(scraped_url_id)
        assert row.times_reused == 1
        assert row.last_reused_at is not None

        [usage] = await usage_rows(session_factory)
        assert usage.request_id == "req-1"
        assert usage.usage_type == UsageType.REUSED
        assert usage.relevance_score == pytest.approx(0.9)
        assert usage.contributed_to_analysis is True

    async def test_duplicate_is_skipped(self, usage_recorder, seed_url, load_row, session_factory):
        scraped_url_id = await seed_url("https://a.com/1")

        first = await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.REUSED)
        second = await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.REUSED)

        assert first.ok is True
        assert second.ok is True
        assert second.skipped is True
        assert (await load_row(scraped_url_id)).times_reused == 1
        assert len(await usage_rows(session_factory)) == 1

    async def test_failed_bump_can_be_retried(
        self, usage_recorder, content_store, seed_url, load_row, session_factory, monkeypatch
    ):
        scraped_url_id = await seed_url("https://a.com/1")
        apply_increment = content_store.apply_reuse_increment
        calls = []

        async def flaky_increment(session, page_id):
            calls.append(page_id)
            if len(calls) == 1:
                raise ContentStoreError("database is locked")
            return await apply_increment(session, page_id)

        monkeypatch.setattr(content_store, "apply_reuse_increment", flaky_increment)

        first = await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.REUSED)
        assert first.ok is False
        assert "database is locked" in first.error
        assert await usage_rows(session_factory) == []
        assert (await load_row(scraped_url_id)).times_reused == 0

        retry = await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.REUSED)
        assert retry.ok is True
        assert retry.skipped is False
        assert (await load_row(scraped_url_id)).times_reused == 1
        assert len(await usage_rows(session_factory)) == 1

    async def test_other_requests_count_separately(self, usage_recorder, seed_url, load_row):
        scraped_url_id = await seed_url("https://a.com/1")

        await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.REUSED)
        await usage_recorder.record_usage("req-2", scraped_url_id, UsageType.REUSED)

        assert (await load_row(scraped_url_id)).times_reused == 2

    @pytest.mark.parametrize("kind", [UsageType.FRESH_SCRAPE, UsageType.VALIDATION])
    async def test_non_reuse_kinds_leave_counter(self, usage_recorder, seed_url, load_row, kind):
        scraped_url_id = await seed_url("https://a.com/1")

        outcome = await usage_recorder.record_usage("req-1", scraped_url_id, kind)

        assert outcome.ok is True
        row = await load_row(scraped_url_id)
        assert row.times_reused == 0
        assert row.last_reused_at is None

    async def test_kind_accepts_plain_value(self, usage_recorder, seed_url, session_factory):
        scraped_url_id = await seed_url("https://a.com/1")

        assert (await usage_recorder.record_usage("req-1", scraped_url_id, "validation")).ok is True
        [usage] = await usage_rows(session_factory)
        assert usage.usage_type == UsageType.VALIDATION

    async def test_unknown_kind_fails(self, usage_recorder, seed_url):
        scraped_url_id = await seed_url("https://a.com/1")

        outcome = await usage_recorder.record_usage("req-1", scraped_url_id, "borrowed")
        assert outcome.ok is False
        assert outcome.error

    async def test_missing_page_fails(self, usage_recorder, session_factory):
        outcome = await usage_recorder.record_usage("req-1", 9999, UsageType.REUSED)

        assert outcome.ok is False
        assert outcome.error
        assert await usage_rows(session_factory) == []

    async def test_relevance_is_clamped(self, usage_recorder, seed_url, session_factory):
        scraped_url_id = await seed_url("https://a.com/1")

        await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.FRESH_SCRAPE, relevance_score=3.0)
        [usage] = await usage_rows(session_factory)
        assert usage.relevance_score == pytest.approx(1.0)

    async def test_usage_removed_with_page(self, usage_recorder, content_store, seed_url, set_row, session_factory):
        scraped_url_id = await seed_url("https://a.com/1", quality=0.05)
        await usage_recorder.record_usage("req-1", scraped_url_id, UsageType.FRESH_SCRAPE)
        await set_row(scraped_url_id, age_days=120)

        assert await content_store.purge_stale() == 1
        assert await usage_rows(session_factory) == []

    async def test_record_usages(self, usage_recorder, seed_url, load_row):
        first = await seed_url("https://a.com/1")
        second = await seed_url("https://a.com/2")

        outcomes = await usage_recorder.record_usages(
            "req-1",
            [
                UsageEntry(scraped_url_id=first, relevance_score=0.7),
                UsageEntry(scraped_url_id=second, kind=UsageType.VALIDATION),
                UsageEntry(scraped_url_id=9999),
            ],
        )

        assert [o.ok for o in outcomes] == [True, True, False]
        assert (await load_row(first)).times_reused == 1
        assert (await load_row(second)).times_reused == 0


@pytest.mark.asyncio
class TestMetrics:

    async def test_record_metrics(self, usage_recorder, session_factory):
        outcome = await usage_recorder.record_metrics(
            cache_hit_count=3,
            total_needed=10,
            response_time_ms=42,
            api_calls_saved=3,
            request_id="req-1",
        )

        assert outcome.ok is True
        async with session_factory() as session:
            [metric] = (await session.execute(select(DeduplicationMetric))).scalars().all()
        assert metric.request_id == "req-1"
        assert metric.cache_hit_count == 3
        assert metric.hit_rate == pytest.approx(0.3)

    async def test_record_metrics_never_raises(self, content_store):
        recorder = UsageRecorder(MagicMock(side_effect=RuntimeError("db down")), content_store)
        outcome = await recorder.record_metrics(1, 2, 3, 1)

        assert outcome.ok is False
        assert "db down" in outcome.error

    async def test_summary(self, usage_recorder):
        await usage_recorder.record_metrics(2, 20, 10, 2)
        await usage_recorder.record_metrics(6, 20, 30, 6)

        summary = await usage_recorder.get_metrics_summary(since_hours=1)

        assert summary.sample_count == 2
        assert summary.total_cache_hits == 8
        assert summary.total_urls_needed == 40
        assert summary.cache_hit_rate == pytest.approx(0.2)
        assert summary.api_calls_saved == 8
        assert summary.avg_response_time_ms == pytest.approx(20.0)
        assert summary.max_response_time_ms == 30

    async def test_summary_window(self, usage_recorder, session_factory):
        await usage_recorder.record_metrics(5, 5, 10, 5)
        async with session_factory() as session:
            await session.execute(
                update(DeduplicationMetric).values(created_at=utcnow() - timedelta(days=2))
            )
            await session.commit()
        await usage_recorder.record_metrics(1, 4, 10, 1)

        summary = await usage_recorder.get_metrics_summary(since_hours=24)
        assert summary.sample_count == 1
        assert summary.cache_hit_rate == pytest.approx(0.25)

    async def test_empty_summary(self, usage_recorder, session_factory):
        summary = await usage_recorder.get_metrics_summary()

        assert summary.sample_count == 0
        assert summary.cache_hit_rate == 0.0
        async with session_factory() as session:
            assert (await session.execute(select(func.count(DeduplicationMetric.id)))).scalar_one() == 0
