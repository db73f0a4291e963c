"""
Pytest configuration and fixtures.

This file is automatically discovered by pytest and provides
shared fixtures for all test modules.

Every test gets its own in-memory SQLite database (aiosqlite). StaticPool
keeps the single in-memory connection alive for the whole test, so every
session opened by a component sees the same tables.

References:
-----------
- Pytest Fixtures: https://docs.pytest.org/en/stable/fixture.html
- SQLite in-memory with asyncio: https://docs.sqlalchemy.org/en/20/dialects/sqlite.html#using-a-memory-database-in-multiple-threads
"""

from datetime import timedelta
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import StaticPool

from research_cache.db.base import Base, utcnow
from research_cache.db.session import SessionFactory, create_engine, create_session_factory
from research_cache.models import ContentType, ScrapedUrl
from research_cache.schemas.research import ResearchContext, StoreMetadata
from research_cache.services.content_store import ContentStore
from research_cache.services.quality import QualityAssessor
from research_cache.services.reuse_selector import ReuseSelector
from research_cache.services.usage_recorder import UsageRecorder

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ================================
# Database Fixtures
# ================================

@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a fresh in-memory database with all tables.

    Built with the application's create_engine() so the SQLite foreign-key
    pragma (needed for ON DELETE CASCADE) is applied exactly as in use.
    """
    engine = create_engine(TEST_DATABASE_URL, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> SessionFactory:
    """Session factory injected into the components under test."""
    return create_session_factory(test_engine)


# ================================
# Component Fixtures
# ================================

@pytest.fixture
def content_store(session_factory: SessionFactory) -> ContentStore:
    return ContentStore(session_factory)


@pytest.fixture
def usage_recorder(session_factory: SessionFactory, content_store: ContentStore) -> UsageRecorder:
    return UsageRecorder(session_factory, content_store)


@pytest_asyncio.fixture
async def reuse_selector(
    content_store: ContentStore, usage_recorder: UsageRecorder
) -> AsyncGenerator[ReuseSelector, None]:
    """Selector whose background metrics writes finish before the database goes away."""
    selector = ReuseSelector(content_store, usage_recorder)
    yield selector
    await selector.drain_metrics()


@pytest.fixture
def assessor() -> QualityAssessor:
    return QualityAssessor()


@pytest.fixture
def google_context() -> ResearchContext:
    """The Google / Software Engineer / US research context."""
    return ResearchContext(company="Google", role="Software Engineer", country="US")


# ================================
# Data Helpers
# ================================

@pytest.fixture
def seed_url(content_store: ContentStore, google_context: ResearchContext) -> Callable[..., Awaitable[int]]:
    """
    Store a page and return its id.

    Usage:
        scraped_url_id = await seed_url("https://x.com/a", quality=0.8)
    """
    async def _seed(
        url: str,
        quality: float = 0.5,
        context: ResearchContext | None = None,
        content_type: ContentType = ContentType.INTERVIEW_REVIEW,
        full_content: str | None = None,
    ) -> int:
        result = await content_store.store(
            url,
            context or google_context,
            StoreMetadata(
                title=f"Page {url}",
                content_type=content_type,
                quality_score=quality,
                full_content=full_content,
            ),
        )
        assert result.created
        return result.scraped_url_id

    return _seed


@pytest.fixture
def set_row(session_factory: SessionFactory) -> Callable[..., Awaitable[None]]:
    """
    Overwrite columns on a stored page, e.g. to age it or fake reuse.

    Usage:
        await set_row(scraped_url_id, age_days=45, times_reused=3)
    """
    async def _set(scraped_url_id: int, age_days: int | None = None, **values) -> None:
        if age_days is not None:
            values["first_scraped_at"] = utcnow() - timedelta(days=age_days)
        async with session_factory() as session:
            await session.execute(
                update(ScrapedUrl).where(ScrapedUrl.id == scraped_url_id).values(**values)
            )
            await session.commit()

    return _set


@pytest.fixture
def load_row(session_factory: SessionFactory) -> Callable[[int], Awaitable[ScrapedUrl | None]]:
    """Load a page straight from the database, bypassing the store."""
    async def _load(scraped_url_id: int) -> ScrapedUrl | None:
        async with session_factory() as session:
            return await session.get(ScrapedUrl, scraped_url_id)

    return _load
