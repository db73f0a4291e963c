"""
Celery tasks for background processing.
"""

from research_cache.tasks.maintenance_tasks import (
    get_cache_stats,
    purge_stale_urls,
)

__all__ = [
    "purge_stale_urls",
    "get_cache_stats",
]
