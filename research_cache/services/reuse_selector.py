"""
Reuse Selector

Answers "which pages do we already have for this research request?"

The lookup is bounded by REUSE_QUERY_TIMEOUT_SECONDS. If the store is slow
or failing, the selector returns an empty (degraded) result and the caller
simply does fresh research. A cache problem must never block a request.

Each lookup, degraded or not, also appends one metrics sample through the
UsageRecorder:

    cache_hit_count   = len(urls)
    total_urls_needed = limit
    api_calls_saved   = len(urls) * API_CALLS_PER_URL

The sample is written by a background task, so a slow metrics table never
delays the result. drain_metrics() waits for samples still in flight.
"""

import asyncio
import time
from typing import List, Optional, Set, Tuple

from research_cache.core.config import settings
from research_cache.core.logging import get_logger
from research_cache.schemas.research import ReusableUrl, ReuseCriteria, ReuseResult
from research_cache.services.content_store import ContentStore
from research_cache.services.usage_recorder import UsageRecorder

logger = get_logger(__name__)


class ReuseSelector:
    """Ranks and caps reusable pages for a company/role request."""

    def __init__(
        self,
        content_store: ContentStore,
        usage_recorder: Optional[UsageRecorder] = None,
        timeout_seconds: Optional[float] = None,
        max_limit: Optional[int] = None,
    ):
        """
        Args:
            content_store: Source of candidate pages
            usage_recorder: Receives one metrics sample per lookup (optional)
            timeout_seconds: Lookup budget (default REUSE_QUERY_TIMEOUT_SECONDS)
            max_limit: Ceiling for the caller's limit (default REUSE_MAX_LIMIT)
        """
        self.content_store = content_store
        self.usage_recorder = usage_recorder
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.REUSE_QUERY_TIMEOUT_SECONDS
        )
        self.max_limit = max_limit if max_limit is not None else settings.REUSE_MAX_LIMIT
        self._background_tasks: Set[asyncio.Task] = set()

    async def find_reusable(
        self,
        company: str,
        role: Optional[str] = None,
        country: Optional[str] = None,
        *,
        max_age_days: Optional[int] = None,
        min_quality_score: Optional[float] = None,
        limit: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> ReuseResult:
        """
        Find stored pages that can be reused for this request.

        Args:
            company: Company being researched
            role: Role title; matched as a case-insensitive substring
            country: Logged only, pages are not filtered by country
            max_age_days: Freshness window (default REUSE_DEFAULT_MAX_AGE_DAYS)
            min_quality_score: Quality floor (default REUSE_DEFAULT_MIN_QUALITY)
            limit: Maximum URLs to return (default REUSE_DEFAULT_LIMIT)
            request_id: Attached to the metrics sample

        Returns:
            ReuseResult ordered best first. Never raises; on timeout or error
            the result is empty with degraded=True.
        """
        if max_age_days is None:
            max_age_days = settings.REUSE_DEFAULT_MAX_AGE_DAYS
        if min_quality_score is None:
            min_quality_score = settings.REUSE_DEFAULT_MIN_QUALITY
        if limit is None:
            limit = settings.REUSE_DEFAULT_LIMIT
        limit = max(0, min(int(limit), self.max_limit))

        started = time.perf_counter()

        try:
            criteria = ReuseCriteria(
                company=company,
                role=role,
                min_quality_score=min_quality_score,
                max_age_days=max_age_days,
                limit=limit,
            )
            entries, excluded = await asyncio.wait_for(
                self._lookup(criteria),
                timeout=self.timeout_seconds,
            )

        except asyncio.TimeoutError:
            logger.warning(
                "reuse_lookup_timeout",
                company=company,
                role=role,
                timeout_seconds=self.timeout_seconds,
            )
            self._record_metrics(0, limit, started, request_id)
            return ReuseResult.empty(degraded=True)

        except Exception as e:
            logger.warning(
                "reuse_lookup_failed",
                company=company,
                role=role,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._record_metrics(0, limit, started, request_id)
            return ReuseResult.empty(degraded=True)

        entries = entries[:limit]
        urls = [entry.url for entry in entries]
        response_time_ms = self._record_metrics(len(urls), limit, started, request_id)

        logger.info(
            "reuse_lookup_completed",
            company=company,
            role=role,
            country=country,
            found=len(urls),
            excluded_domains=len(excluded),
            response_time_ms=response_time_ms,
        )

        return ReuseResult(
            urls=urls,
            excluded_domains=excluded,
            total_count=len(urls),
            entries=entries,
        )

    async def drain_metrics(self) -> None:
        """Wait for metrics samples that are still being written."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def _lookup(self, criteria: ReuseCriteria) -> Tuple[List[ReusableUrl], List[str]]:
        entries = await self.content_store.query_reusable(criteria)
        excluded = await self.content_store.find_excluded_domains(criteria.company, criteria.role)
        return entries, excluded

    def _record_metrics(
        self,
        hits: int,
        needed: int,
        started: float,
        request_id: Optional[str],
    ) -> int:
        """Schedule one metrics sample and return the measured response time."""
        response_time_ms = int((time.perf_counter() - started) * 1000)
        if self.usage_recorder is None:
            return response_time_ms

        task = asyncio.create_task(
            self.usage_recorder.record_metrics(
                cache_hit_count=hits,
                total_needed=needed,
                response_time_ms=response_time_ms,
                api_calls_saved=hits * settings.API_CALLS_PER_URL,
                request_id=request_id,
            )
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._metrics_done)
        return response_time_ms

    def _metrics_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "dedup_metrics_task_failed",
                error=str(error),
                error_type=type(error).__name__,
            )
