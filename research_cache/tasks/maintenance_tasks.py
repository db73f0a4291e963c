"""
Celery tasks for research cache maintenance.

This module contains background tasks for:
- Purging stale, low-quality, never-reused pages
- Reporting content store and deduplication statistics

The purge is registered on the beat schedule only when
PURGE_SCHEDULE_ENABLED is set (see workers/celery_app.py).
"""

import asyncio
from typing import Optional

import nest_asyncio
from celery import Task
from sqlalchemy.pool import NullPool

from research_cache.core.config import settings
from research_cache.core.logging import get_logger
from research_cache.db.session import create_engine, create_session_factory
from research_cache.services.content_store import ContentStore
from research_cache.services.usage_recorder import UsageRecorder
from research_cache.workers.celery_app import celery_app

# Apply nest_asyncio to allow nested event loops in Celery workers
nest_asyncio.apply()

logger = get_logger(__name__)


# ========================================
# Helper Functions
# ========================================

def run_async(coro):
    """
    Run async coroutine in Celery task context.

    Uses asyncio.run() with nest_asyncio applied at module level
    to handle potential nested event loop scenarios.
    """
    return asyncio.run(coro)


async def _with_store(operation):
    """
    Run `operation(session_factory)` against a task-scoped engine.

    asyncio.run() creates a fresh event loop per task, so pooled
    connections from a previous loop cannot be reused.
    """
    engine = create_engine(poolclass=NullPool)
    try:
        return await operation(create_session_factory(engine))
    finally:
        await engine.dispose()


class MaintenanceTask(Task):
    """Base task class with retry logic and error handling."""

    autoretry_for = (Exception,)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True


# ========================================
# Main Tasks
# ========================================

@celery_app.task(
    base=MaintenanceTask,
    name='maintenance.purge_stale_urls',
    bind=True,
    max_retries=3
)
def purge_stale_urls(
    self,
    max_age_days: Optional[int] = None,
    min_quality: Optional[float] = None,
) -> dict:
    """
    Delete stored pages that are old, low quality and never reused.

    Args:
        max_age_days: Age threshold (default PURGE_MAX_AGE_DAYS)
        min_quality: Quality threshold (default PURGE_MIN_QUALITY)

    Returns:
        Dictionary with the number of rows deleted
    """
    max_age_days = max_age_days if max_age_days is not None else settings.PURGE_MAX_AGE_DAYS
    min_quality = min_quality if min_quality is not None else settings.PURGE_MIN_QUALITY

    async def _purge(session_factory):
        store = ContentStore(session_factory)
        return await store.purge_stale(max_age_days, min_quality)

    logger.info(
        "stale_url_purge_started",
        task_id=self.request.id,
        max_age_days=max_age_days,
        min_quality=min_quality,
    )

    deleted = run_async(_with_store(_purge))

    return {
        'success': True,
        'deleted': deleted,
        'max_age_days': max_age_days,
        'min_quality': min_quality,
    }


# ========================================
# Task Monitoring
# ========================================

@celery_app.task(name='maintenance.get_cache_stats')
def get_cache_stats(since_hours: int = 24) -> dict:
    """
    Get statistics about the research cache.

    Returns:
        Dictionary with content store counts and the deduplication
        metrics summary for the last `since_hours`
    """
    async def _stats(session_factory):
        store = ContentStore(session_factory)
        recorder = UsageRecorder(session_factory, store)
        content = await store.get_stats()
        metrics = await recorder.get_metrics_summary(since_hours)
        return {
            'content': content.model_dump(),
            'metrics': metrics.model_dump(mode='json'),
        }

    return run_async(_with_store(_stats))
