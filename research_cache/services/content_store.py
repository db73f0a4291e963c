"""
Content Store

Durable access layer over the scraped_urls table. Every other component
reads and writes pages through this class.

Transactions:
-------------
Each public method opens its own session from the injected factory and
commits (or rolls back) before returning. Nothing is shared between calls,
so one ContentStore can serve many concurrent requests.

Duplicates:
-----------
(url_hash, company_key) is unique. store() inserts optimistically; when the
insert loses to an existing row (including a concurrent insert from another
request) the transaction is rolled back and the existing id is returned
with created=False.

Usage:
------
    store = ContentStore(get_session_factory())
    result = await store.store(url, ResearchContext(company="Google"), metadata)
    await store.update_content(result.scraped_url_id, ContentUpdate(full_content=text))
"""

from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from research_cache.core.config import settings
from research_cache.core.exceptions import ContentStoreError, InvalidStatusTransition
from research_cache.core.logging import get_logger
from research_cache.db.base import utcnow
from research_cache.db.session import SessionFactory
from research_cache.models.scraped_url import (
    ProcessingStatus,
    ScrapedUrl,
    company_key,
    count_words,
    extract_domain,
    hash_url,
)
from research_cache.schemas.research import (
    CachedContent,
    ContentStoreStats,
    ContentUpdate,
    ResearchContext,
    ReusableUrl,
    ReuseCriteria,
    StoreMetadata,
    StoreResult,
)
from research_cache.schemas.structured import StructuredContent

logger = get_logger(__name__)


def clamp_score(score: float) -> float:
    """Clamp a quality score to [0, 1]."""
    return max(0.0, min(1.0, float(score)))


def _role_matches(role: str):
    """Case-insensitive substring match on role_title."""
    return func.lower(ScrapedUrl.role_title).contains(role.strip().lower(), autoescape=True)


class ContentStore:
    """Reads and writes ScrapedUrl rows."""

    def __init__(self, session_factory: SessionFactory, batch_max_urls: Optional[int] = None):
        """
        Args:
            session_factory: async_sessionmaker bound to the cache database
            batch_max_urls: Cap on get_by_urls() input (default from settings)
        """
        self._session_factory = session_factory
        self.batch_max_urls = batch_max_urls or settings.CONTENT_BATCH_MAX_URLS

    # ========================================
    # Writes
    # ========================================

    async def store(
        self,
        url: str,
        context: ResearchContext,
        metadata: Optional[StoreMetadata] = None,
    ) -> StoreResult:
        """
        Insert a newly fetched page.

        Args:
            url: Page URL
            context: Company/role/country the page was fetched for
            metadata: Title, type, quality score and any extracted content

        Returns:
            StoreResult(created=True) with the new id, or created=False with
            the existing row's id when the page is already stored

        Raises:
            ContentStoreError: On any database failure other than a duplicate
        """
        url = url.strip()
        if not url:
            raise ValueError("url cannot be empty")

        metadata = metadata or StoreMetadata()
        url_hash = hash_url(url)
        key = context.company_key

        structured = metadata.structured_data
        if structured is None:
            structured = StructuredContent(
                question_count=len(metadata.extracted_questions),
                insight_count=len(metadata.extracted_insights),
            )

        row = ScrapedUrl(
            url=url,
            url_hash=url_hash,
            domain=extract_domain(url),
            company_name=context.company,
            company_key=key,
            role_title=context.role,
            country=context.country,
            title=metadata.title,
            content_summary=metadata.content_summary,
            content_type=metadata.content_type,
            extraction_method=metadata.extraction_method,
            content_source=metadata.content_source,
            language=metadata.language,
            full_content=metadata.full_content,
            ai_summary=metadata.ai_summary,
            extracted_questions=list(metadata.extracted_questions),
            extracted_insights=list(metadata.extracted_insights),
            structured_data=structured.model_dump(),
            word_count=count_words(metadata.full_content),
            content_quality_score=clamp_score(metadata.quality_score),
            processing_status=ProcessingStatus.RAW,
            times_reused=0,
            first_scraped_at=utcnow(),
        )

        async with self._session_factory() as session:
            try:
                session.add(row)
                await session.commit()

            except IntegrityError as e:
                await session.rollback()
                existing_id = await self._find_id(session, url_hash, key)
                if existing_id is None:
                    # Not a duplicate; some other constraint rejected the row
                    logger.error(
                        "scraped_url_store_failed",
                        url=url,
                        company=context.company,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise ContentStoreError(f"Failed to store {url}: {e}") from e

                logger.info(
                    "scraped_url_already_stored",
                    url=url,
                    company=context.company,
                    scraped_url_id=existing_id,
                )
                return StoreResult(scraped_url_id=existing_id, created=False)

            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(
                    "scraped_url_store_failed",
                    url=url,
                    company=context.company,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise ContentStoreError(f"Failed to store {url}: {e}") from e

        logger.info(
            "scraped_url_stored",
            scraped_url_id=row.id,
            domain=row.domain,
            company=context.company,
            content_type=str(row.content_type),
            quality_score=row.content_quality_score,
        )
        return StoreResult(scraped_url_id=row.id, created=True)

    async def update_content(self, scraped_url_id: int, content: ContentUpdate) -> bool:
        """
        Attach freshly extracted content to an existing page.

        Moves the page to PROCESSED. A page that is already ANALYZED keeps
        its status; a FAILED page is left untouched.

        Returns:
            True if the page was updated, False if it does not exist, is
            FAILED, or the update failed
        """
        async with self._session_factory() as session:
            try:
                row = await session.get(ScrapedUrl, scraped_url_id)
                if row is None:
                    logger.warning("scraped_url_not_found", scraped_url_id=scraped_url_id)
                    return False

                if row.processing_status is ProcessingStatus.FAILED:
                    logger.warning(
                        "scraped_url_update_rejected",
                        scraped_url_id=scraped_url_id,
                        status=str(row.processing_status),
                    )
                    return False

                structured = content.structured_data or StructuredContent(
                    question_count=len(content.extracted_questions),
                    insight_count=len(content.extracted_insights),
                )

                row.full_content = content.full_content
                row.extracted_questions = list(content.extracted_questions)
                row.extracted_insights = list(content.extracted_insights)
                row.ai_summary = content.ai_summary
                row.structured_data = structured.model_dump()
                row.word_count = count_words(content.full_content)
                if content.content_source:
                    row.content_source = content.content_source
                if content.quality_score is not None:
                    row.content_quality_score = clamp_score(content.quality_score)

                if row.processing_status is not ProcessingStatus.ANALYZED:
                    row.advance_status(ProcessingStatus.PROCESSED)

                await session.commit()

            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(
                    "scraped_url_update_failed",
                    scraped_url_id=scraped_url_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False

        logger.info(
            "scraped_url_content_updated",
            scraped_url_id=scraped_url_id,
            word_count=row.word_count,
            questions=len(row.extracted_questions),
            insights=len(row.extracted_insights),
        )
        return True

    async def mark_analyzed(self, scraped_url_id: int) -> bool:
        """Move a page to ANALYZED. Returns False if missing or not allowed."""
        return await self._transition(scraped_url_id, ProcessingStatus.ANALYZED)

    async def mark_failed(self, scraped_url_id: int, error: str) -> bool:
        """Move a page to FAILED and record why. Returns False if missing."""
        return await self._transition(scraped_url_id, ProcessingStatus.FAILED, error)

    async def _transition(
        self,
        scraped_url_id: int,
        target: ProcessingStatus,
        error: Optional[str] = None,
    ) -> bool:
        async with self._session_factory() as session:
            try:
                row = await session.get(ScrapedUrl, scraped_url_id)
                if row is None:
                    logger.warning("scraped_url_not_found", scraped_url_id=scraped_url_id)
                    return False

                row.advance_status(target)
                if error is not None:
                    row.error_message = error[:2000]
                await session.commit()

            except InvalidStatusTransition as e:
                await session.rollback()
                logger.warning(
                    "scraped_url_transition_rejected",
                    scraped_url_id=scraped_url_id,
                    current=e.current,
                    target=e.target,
                )
                return False

            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(
                    "scraped_url_transition_failed",
                    scraped_url_id=scraped_url_id,
                    target=str(target),
                    error=str(e),
                )
                return False

        logger.info("scraped_url_status_changed", scraped_url_id=scraped_url_id, status=str(target))
        return True

    async def increment_reuse(self, scraped_url_id: int) -> bool:
        """
        Atomically bump times_reused and stamp last_reused_at.

        Runs as a single UPDATE ... SET times_reused = times_reused + 1, so
        concurrent callers never lose an increment.

        Returns:
            True if a row was updated

        Raises:
            ContentStoreError: On database failure
        """
        async with self._session_factory() as session:
            try:
                updated = await self.apply_reuse_increment(session, scraped_url_id)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(
                    "scraped_url_reuse_increment_failed",
                    scraped_url_id=scraped_url_id,
                    error=str(e),
                )
                raise ContentStoreError(f"Failed to increment reuse for {scraped_url_id}: {e}") from e

        if not updated:
            logger.warning("scraped_url_not_found", scraped_url_id=scraped_url_id)
        return updated

    async def apply_reuse_increment(self, session: AsyncSession, scraped_url_id: int) -> bool:
        """
        Run the reuse UPDATE inside the caller's transaction.

        The caller owns the session and commits or rolls back, so the bump
        can be committed together with other writes.

        Returns:
            True if a row was updated
        """
        result = await session.execute(
            update(ScrapedUrl)
            .where(ScrapedUrl.id == scraped_url_id)
            .values(
                times_reused=ScrapedUrl.times_reused + 1,
                last_reused_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def purge_stale(
        self,
        max_age_days: Optional[int] = None,
        min_quality_threshold: Optional[float] = None,
    ) -> int:
        """
        Delete pages that are old, low quality and never reused.

        A page is deleted only when ALL of these hold:
        - first_scraped_at is older than max_age_days
        - content_quality_score < min_quality_threshold
        - times_reused == 0

        Returns:
            Number of rows deleted

        Raises:
            ContentStoreError: On database failure
        """
        if max_age_days is None:
            max_age_days = settings.PURGE_MAX_AGE_DAYS
        if min_quality_threshold is None:
            min_quality_threshold = settings.PURGE_MIN_QUALITY

        cutoff = utcnow() - timedelta(days=max_age_days)
        stmt = (
            delete(ScrapedUrl)
            .where(
                ScrapedUrl.first_scraped_at < cutoff,
                ScrapedUrl.content_quality_score < min_quality_threshold,
                ScrapedUrl.times_reused == 0,
            )
            .execution_options(synchronize_session=False)
        )

        async with self._session_factory() as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("stale_url_purge_failed", error=str(e))
                raise ContentStoreError(f"Failed to purge stale URLs: {e}") from e

        deleted = result.rowcount or 0
        logger.info(
            "stale_urls_purged",
            deleted=deleted,
            max_age_days=max_age_days,
            min_quality=min_quality_threshold,
        )
        return deleted

    # ========================================
    # Reads
    # ========================================

    async def get(self, scraped_url_id: int) -> Optional[ScrapedUrl]:
        """Load one page by id."""
        async with self._session_factory() as session:
            return await session.get(ScrapedUrl, scraped_url_id)

    async def get_by_urls(self, urls: Sequence[str], context: ResearchContext) -> List[CachedContent]:
        """
        Fetch stored content for URLs already known for this company.

        Only pages with full content are returned, in input order. Input is
        de-duplicated and capped at batch_max_urls. An empty list returns
        immediately without touching the database.

        Raises:
            ContentStoreError: On database failure
        """
        unique_urls = list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
        if not unique_urls:
            return []

        if len(unique_urls) > self.batch_max_urls:
            logger.warning(
                "content_batch_truncated",
                requested=len(unique_urls),
                limit=self.batch_max_urls,
            )
            unique_urls = unique_urls[: self.batch_max_urls]

        hashes = {hash_url(u): position for position, u in enumerate(unique_urls)}

        stmt = select(ScrapedUrl).where(
            ScrapedUrl.url_hash.in_(list(hashes)),
            ScrapedUrl.company_key == context.company_key,
            ScrapedUrl.full_content.is_not(None),
            ScrapedUrl.full_content != "",
        )

        async with self._session_factory() as session:
            try:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
            except SQLAlchemyError as e:
                logger.error(
                    "cached_content_lookup_failed",
                    company=context.company,
                    urls=len(unique_urls),
                    error=str(e),
                )
                raise ContentStoreError(f"Failed to load cached content: {e}") from e

        rows.sort(key=lambda row: hashes[row.url_hash])
        logger.debug(
            "cached_content_loaded",
            company=context.company,
            requested=len(unique_urls),
            found=len(rows),
        )
        return [CachedContent.from_model(row) for row in rows]

    async def query_reusable(self, criteria: ReuseCriteria) -> List[ReusableUrl]:
        """
        Select reusable pages for a company (and optionally a role).

        Filters: company match, role substring (case-insensitive, when
        given), quality >= min_quality_score, first scraped within
        max_age_days. Ordered best first: quality, then times_reused, then
        newest, then id.
        """
        if criteria.limit <= 0:
            return []

        cutoff = utcnow() - timedelta(days=criteria.max_age_days)
        stmt = (
            select(
                ScrapedUrl.id,
                ScrapedUrl.url,
                ScrapedUrl.domain,
                ScrapedUrl.content_type,
                ScrapedUrl.content_quality_score,
                ScrapedUrl.times_reused,
                ScrapedUrl.first_scraped_at,
            )
            .where(
                ScrapedUrl.company_key == criteria.company_key,
                ScrapedUrl.content_quality_score >= criteria.min_quality_score,
                ScrapedUrl.first_scraped_at > cutoff,
            )
            .order_by(
                ScrapedUrl.content_quality_score.desc(),
                ScrapedUrl.times_reused.desc(),
                ScrapedUrl.first_scraped_at.desc(),
                ScrapedUrl.id.desc(),
            )
            .limit(criteria.limit)
        )
        if criteria.role:
            stmt = stmt.where(_role_matches(criteria.role))

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            ReusableUrl(
                scraped_url_id=row.id,
                url=row.url,
                domain=row.domain,
                content_type=row.content_type,
                quality_score=row.content_quality_score,
                times_reused=row.times_reused,
                first_scraped_at=row.first_scraped_at,
            )
            for row in rows
        ]

    async def find_excluded_domains(
        self,
        company: str,
        role: Optional[str] = None,
        min_reuse_count: Optional[int] = None,
        max_quality: Optional[float] = None,
    ) -> List[str]:
        """
        Domains that keep getting reused for this company but score poorly.

        The caller can leave these out of fresh searches.
        """
        if min_reuse_count is None:
            min_reuse_count = settings.EXCLUDED_DOMAIN_MIN_REUSE
        if max_quality is None:
            max_quality = settings.EXCLUDED_DOMAIN_MAX_QUALITY

        stmt = (
            select(ScrapedUrl.domain)
            .where(
                ScrapedUrl.company_key == company_key(company),
                ScrapedUrl.times_reused >= min_reuse_count,
                ScrapedUrl.content_quality_score < max_quality,
            )
            .distinct()
            .order_by(ScrapedUrl.domain)
        )
        if role:
            stmt = stmt.where(_role_matches(role))

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_stats(self, company: Optional[str] = None) -> ContentStoreStats:
        """Counts by status and content type, average quality and total reuses."""
        filters = []
        if company:
            filters.append(ScrapedUrl.company_key == company_key(company))

        async with self._session_factory() as session:
            totals = (
                await session.execute(
                    select(
                        func.count(ScrapedUrl.id),
                        func.avg(ScrapedUrl.content_quality_score),
                        func.sum(ScrapedUrl.times_reused),
                    ).where(*filters)
                )
            ).one()

            by_status = await self._count_by(session, ScrapedUrl.processing_status, filters)
            by_type = await self._count_by(session, ScrapedUrl.content_type, filters)

        total, average_quality, total_reuses = totals
        return ContentStoreStats(
            total_urls=total or 0,
            by_status=by_status,
            by_content_type=by_type,
            average_quality=round(float(average_quality or 0.0), 4),
            total_reuses=int(total_reuses or 0),
        )

    # ========================================
    # Helpers
    # ========================================

    @staticmethod
    async def _count_by(session: AsyncSession, column, filters) -> Dict[str, int]:
        result = await session.execute(
            select(column, func.count(ScrapedUrl.id)).where(*filters).group_by(column)
        )
        return {str(value): count for value, count in result.all()}

    @staticmethod
    async def _find_id(session: AsyncSession, url_hash: str, key: str) -> Optional[int]:
        result = await session.execute(
            select(ScrapedUrl.id).where(
                ScrapedUrl.url_hash == url_hash,
                ScrapedUrl.company_key == key,
            )
        )
        return result.scalar_one_or_none()
