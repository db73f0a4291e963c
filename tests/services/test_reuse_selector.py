"""
Tests for ReuseSelector.

This test module verifies:
1. Quality / freshness / role filtering and best-first ordering
2. Limit handling (caller limit and hard ceiling)
3. Degraded results on timeout or store failure
4. One background metrics sample per lookup, degraded or not
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from research_cache.schemas.research import ResearchContext
from research_cache.services.reuse_selector import ReuseSelector
from research_cache.services.usage_recorder import UsageRecorder


@pytest.fixture
def failing_store() -> MagicMock:
    store = MagicMock()
    store.query_reusable = AsyncMock(side_effect=RuntimeError("connection refused"))
    store.find_excluded_domains = AsyncMock(return_value=[])
    return store


@pytest.mark.asyncio
class TestFindReusable:

    async def test_quality_floor_and_order(self, reuse_selector, seed_url):
        await seed_url("https://www.glassdoor.com/a", quality=0.8)
        await seed_url("https://www.teamblind.com/b", quality=0.4)
        await seed_url("https://example.com/c", quality=0.2)

        result = await reuse_selector.find_reusable("Google", "Software Engineer", "US")

        assert result.urls == ["https://www.glassdoor.com/a", "https://www.teamblind.com/b"]
        assert result.total_count == 2
        assert result.degraded is False
        assert [e.quality_score for e in result.entries] == [pytest.approx(0.8), pytest.approx(0.4)]

    async def test_company_is_case_insensitive(self, reuse_selector, seed_url):
        await seed_url("https://www.glassdoor.com/a", quality=0.8)

        result = await reuse_selector.find_reusable("  google ")
        assert result.urls == ["https://www.glassdoor.com/a"]

    async def test_other_company_is_not_returned(self, reuse_selector, seed_url):
        await seed_url("https://www.glassdoor.com/a", quality=0.8)

        result = await reuse_selector.find_reusable("Meta")
        assert result.urls == []
        assert result.degraded is False

    async def test_role_is_case_insensitive_substring(self, reuse_selector, seed_url):
        await seed_url(
            "https://a.com/senior",
            quality=0.8,
            context=ResearchContext(company="Google", role="Senior Software Engineer"),
        )
        await seed_url(
            "https://a.com/general",
            quality=0.9,
            context=ResearchContext(company="Google"),
        )

        with_role = await reuse_selector.find_reusable("Google", "software ENGINEER")
        without_role = await reuse_selector.find_reusable("Google")

        assert with_role.urls == ["https://a.com/senior"]
        assert without_role.urls == ["https://a.com/general", "https://a.com/senior"]

    async def test_stale_rows_excluded(self, reuse_selector, seed_url, set_row):
        fresh = await seed_url("https://a.com/fresh", quality=0.6)
        stale = await seed_url("https://a.com/stale", quality=0.9)
        await set_row(stale, age_days=31)

        result = await reuse_selector.find_reusable("Google")
        assert [e.scraped_url_id for e in result.entries] == [fresh]

        wider = await reuse_selector.find_reusable("Google", max_age_days=60)
        assert [e.scraped_url_id for e in wider.entries] == [stale, fresh]

    async def test_ties_broken_by_reuse_count(self, reuse_selector, seed_url, set_row):
        first = await seed_url("https://a.com/1", quality=0.7)
        second = await seed_url("https://a.com/2", quality=0.7)
        await set_row(first, times_reused=3)

        result = await reuse_selector.find_reusable("Google")
        assert [e.scraped_url_id for e in result.entries] == [first, second]

    async def test_limit(self, reuse_selector, seed_url):
        for i in range(5):
            await seed_url(f"https://a.com/{i}", quality=0.5 + i / 10)

        result = await reuse_selector.find_reusable("Google", limit=2)
        assert result.urls == ["https://a.com/4", "https://a.com/3"]
        assert result.total_count == 2

    async def test_limit_clamped_to_ceiling(self, content_store, seed_url):
        for i in range(4):
            await seed_url(f"https://a.com/{i}", quality=0.8)

        selector = ReuseSelector(content_store, max_limit=3)
        assert len((await selector.find_reusable("Google", limit=50)).urls) == 3
        assert (await selector.find_reusable("Google", limit=-1)).urls == []

    async def test_excluded_domains_reported(self, reuse_selector, seed_url, set_row):
        noisy = await seed_url("https://www.reddit.com/r/x/1", quality=0.35)
        await set_row(noisy, times_reused=2)

        result = await reuse_selector.find_reusable("Google", "Software Engineer")
        assert result.excluded_domains == ["www.reddit.com"]
        assert result.urls == ["https://www.reddit.com/r/x/1"]


@pytest.mark.asyncio
class TestDegradedLookup:

    async def test_timeout_returns_degraded_within_budget(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return []

        store = MagicMock()
        store.query_reusable = AsyncMock(side_effect=slow)
        store.find_excluded_domains = AsyncMock(return_value=[])

        selector = ReuseSelector(store, timeout_seconds=0.05)
        started = time.perf_counter()
        result = await selector.find_reusable("Google")
        elapsed = time.perf_counter() - started

        assert result.degraded is True
        assert result.urls == []
        assert result.total_count == 0
        assert elapsed < 0.5

    async def test_zero_timeout_is_respected(self, content_store):
        selector = ReuseSelector(content_store, timeout_seconds=0)
        assert selector.timeout_seconds == 0

        result = await selector.find_reusable("Google")
        assert result.degraded is True

    async def test_store_error_returns_degraded(self, failing_store):
        result = await ReuseSelector(failing_store).find_reusable("Google", "Software Engineer")

        assert result.degraded is True
        assert result.urls == []
        assert result.excluded_domains == []

    async def test_degraded_lookup_records_sample(self, failing_store, usage_recorder):
        selector = ReuseSelector(failing_store, usage_recorder)

        await selector.find_reusable("Google", limit=5, request_id="req-1")
        await selector.drain_metrics()

        summary = await usage_recorder.get_metrics_summary()
        assert summary.sample_count == 1
        assert summary.total_cache_hits == 0
        assert summary.total_urls_needed == 5
        assert summary.api_calls_saved == 0

    async def test_timed_out_lookup_records_sample(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return []

        store = MagicMock()
        store.query_reusable = AsyncMock(side_effect=slow)
        store.find_excluded_domains = AsyncMock(return_value=[])
        recorder = MagicMock()
        recorder.record_metrics = AsyncMock()

        selector = ReuseSelector(store, recorder, timeout_seconds=0.05)
        await selector.find_reusable("Google", limit=4)
        await selector.drain_metrics()

        recorder.record_metrics.assert_awaited_once()
        sample = recorder.record_metrics.await_args.kwargs
        assert sample["cache_hit_count"] == 0
        assert sample["total_needed"] == 4
        assert sample["api_calls_saved"] == 0
        assert sample["response_time_ms"] >= 40


@pytest.mark.asyncio
class TestMetricsSample:

    async def test_sample_recorded(self, reuse_selector, usage_recorder, seed_url):
        await seed_url("https://a.com/1", quality=0.8)
        await seed_url("https://a.com/2", quality=0.4)

        await reuse_selector.find_reusable("Google", request_id="req-1")
        await reuse_selector.drain_metrics()

        summary = await usage_recorder.get_metrics_summary()
        assert summary.sample_count == 1
        assert summary.total_cache_hits == 2
        assert summary.total_urls_needed == 20
        assert summary.api_calls_saved == 2
        assert summary.cache_hit_rate == pytest.approx(0.1)

    async def test_slow_recorder_does_not_delay_result(self, content_store, seed_url):
        await seed_url("https://a.com/1", quality=0.8)

        async def slow_metrics(**sample):
            await asyncio.sleep(1)

        recorder = MagicMock()
        recorder.record_metrics = AsyncMock(side_effect=slow_metrics)
        selector = ReuseSelector(content_store, recorder, timeout_seconds=0.1)

        started = time.perf_counter()
        result = await selector.find_reusable("Google")
        elapsed = time.perf_counter() - started

        assert result.urls == ["https://a.com/1"]
        assert elapsed < 0.5

        await selector.drain_metrics()
        recorder.record_metrics.assert_awaited_once()

    async def test_recorder_failure_does_not_change_result(self, content_store, seed_url):
        await seed_url("https://a.com/1", quality=0.8)
        broken_recorder = UsageRecorder(MagicMock(side_effect=RuntimeError("db down")), content_store)
        selector = ReuseSelector(content_store, broken_recorder)

        result = await selector.find_reusable("Google")
        await selector.drain_metrics()

        assert result.urls == ["https://a.com/1"]
        assert result.degraded is False

    async def test_metrics_task_error_is_contained(self, content_store, seed_url):
        await seed_url("https://a.com/1", quality=0.8)
        recorder = MagicMock()
        recorder.record_metrics = AsyncMock(side_effect=RuntimeError("boom"))
        selector = ReuseSelector(content_store, recorder)

        result = await selector.find_reusable("Google")
        await selector.drain_metrics()

        assert result.urls == ["https://a.com/1"]
        assert selector._background_tasks == set()
