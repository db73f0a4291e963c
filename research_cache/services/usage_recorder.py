"""
Usage & Metrics Recorder

Closes the loop after a research request: which stored pages it drew upon,
and how effective the cache lookup was.

Every method here is best-effort. Failures are logged and returned as a
RecordOutcome instead of raised, so a recording problem never changes what
the research workflow returns to its user.
"""

from datetime import timedelta
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from research_cache.core.logging import get_logger
from research_cache.db.base import utcnow
from research_cache.db.session import SessionFactory
from research_cache.models.usage import DeduplicationMetric, SearchContentUsage, UsageType
from research_cache.schemas.research import (
    DeduplicationMetricsSummary,
    RecordOutcome,
    UsageEntry,
)
from research_cache.services.content_store import ContentStore, clamp_score

logger = get_logger(__name__)


class UsageRecorder:
    """Writes search_content_usage and url_deduplication_metrics rows."""

    def __init__(self, session_factory: SessionFactory, content_store: Optional[ContentStore] = None):
        self._session_factory = session_factory
        self.content_store = content_store or ContentStore(session_factory)

    async def record_usage(
        self,
        request_id: str,
        scraped_url_id: int,
        kind: UsageType,
        relevance_score: float = 0.0,
        contributed_to_analysis: bool = True,
    ) -> RecordOutcome:
        """
        Record that a request used a stored page.

        A REUSED usage also bumps the page's reuse counter. The usage row and
        the bump are committed in one transaction, so a failed bump leaves
        no usage row behind and the call can be retried. Recording the same
        (request, page) pair twice is a no-op the second time and does not
        bump the counter again.

        Returns:
            RecordOutcome: ok=True on insert, ok=True/skipped=True on a
            duplicate, ok=False with the error otherwise
        """
        try:
            kind = UsageType(kind)

            async with self._session_factory() as session:
                try:
                    session.add(
                        SearchContentUsage(
                            request_id=request_id,
                            scraped_url_id=scraped_url_id,
                            usage_type=kind,
                            relevance_score=clamp_score(relevance_score),
                            contributed_to_analysis=contributed_to_analysis,
                        )
                    )
                    await session.flush()

                    if kind is UsageType.REUSED:
                        if not await self.content_store.apply_reuse_increment(session, scraped_url_id):
                            await session.rollback()
                            return RecordOutcome.failure(f"scraped url {scraped_url_id} not found")

                    await session.commit()

                except IntegrityError:
                    await session.rollback()
                    if not await self._usage_exists(session, request_id, scraped_url_id):
                        raise
                    logger.info(
                        "usage_already_recorded",
                        request_id=request_id,
                        scraped_url_id=scraped_url_id,
                    )
                    return RecordOutcome.duplicate()

                except Exception:
                    await session.rollback()
                    raise

        except Exception as e:
            logger.warning(
                "usage_record_failed",
                request_id=request_id,
                scraped_url_id=scraped_url_id,
                kind=str(kind),
                error=str(e),
                error_type=type(e).__name__,
            )
            return RecordOutcome.failure(str(e))

        logger.debug(
            "usage_recorded",
            request_id=request_id,
            scraped_url_id=scraped_url_id,
            kind=str(kind),
        )
        return RecordOutcome.success()

    async def record_usages(self, request_id: str, entries: Iterable[UsageEntry]) -> List[RecordOutcome]:
        """Record several usages for one request, one outcome per entry."""
        outcomes = []
        for entry in entries:
            outcomes.append(
                await self.record_usage(
                    request_id,
                    entry.scraped_url_id,
                    entry.kind,
                    relevance_score=entry.relevance_score,
                    contributed_to_analysis=entry.contributed_to_analysis,
                )
            )
        return outcomes

    async def record_metrics(
        self,
        cache_hit_count: int,
        total_needed: int,
        response_time_ms: int,
        api_calls_saved: int,
        request_id: Optional[str] = None,
    ) -> RecordOutcome:
        """Append one deduplication metrics sample. Never raises."""
        try:
            async with self._session_factory() as session:
                session.add(
                    DeduplicationMetric(
                        request_id=request_id,
                        cache_hit_count=max(0, int(cache_hit_count)),
                        total_urls_needed=max(0, int(total_needed)),
                        response_time_ms=max(0, int(response_time_ms)),
                        api_calls_saved=max(0, int(api_calls_saved)),
                    )
                )
                await session.commit()

        except Exception as e:
            logger.warning(
                "dedup_metrics_record_failed",
                request_id=request_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RecordOutcome.failure(str(e))

        return RecordOutcome.success()

    async def get_metrics_summary(self, since_hours: int = 24) -> DeduplicationMetricsSummary:
        """
        Aggregate metrics samples recorded in the last `since_hours`.

        cache_hit_rate = total hits / total URLs needed (0 when nothing was
        needed).
        """
        since = utcnow() - timedelta(hours=since_hours)
        stmt = select(
            func.count(DeduplicationMetric.id),
            func.sum(DeduplicationMetric.cache_hit_count),
            func.sum(DeduplicationMetric.total_urls_needed),
            func.sum(DeduplicationMetric.api_calls_saved),
            func.avg(DeduplicationMetric.response_time_ms),
            func.max(DeduplicationMetric.response_time_ms),
        ).where(DeduplicationMetric.created_at >= since)

        async with self._session_factory() as session:
            count, hits, needed, saved, avg_ms, max_ms = (await session.execute(stmt)).one()

        hits = int(hits or 0)
        needed = int(needed or 0)
        return DeduplicationMetricsSummary(
            since=since,
            sample_count=count or 0,
            total_cache_hits=hits,
            total_urls_needed=needed,
            cache_hit_rate=round(hits / needed, 4) if needed else 0.0,
            api_calls_saved=int(saved or 0),
            avg_response_time_ms=round(float(avg_ms or 0.0), 2),
            max_response_time_ms=int(max_ms or 0),
        )

    @staticmethod
    async def _usage_exists(session, request_id: str, scraped_url_id: int) -> bool:
        result = await session.execute(
            select(SearchContentUsage.id).where(
                SearchContentUsage.request_id == request_id,
                SearchContentUsage.scraped_url_id == scraped_url_id,
            )
        )
        return result.scalar_one_or_none() is not None
