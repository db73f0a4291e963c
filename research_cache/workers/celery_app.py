"""
Celery application instance and configuration.
"""

from celery import Celery
from celery.schedules import crontab

from research_cache.core.config import settings

# Create Celery application
celery_app = Celery(
    "research_cache",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    result_expires=3600,  # 1 hour
)


def build_beat_schedule() -> dict:
    """Periodic tasks; the purge only runs when explicitly enabled."""
    schedule = {}
    if settings.PURGE_SCHEDULE_ENABLED:
        schedule['purge-stale-urls'] = {
            'task': 'maintenance.purge_stale_urls',
            'schedule': crontab(minute='0', hour=str(settings.PURGE_SCHEDULE_HOUR)),
            'options': {'queue': 'maintenance'},
        }
    return schedule


# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = build_beat_schedule()

# Task routing
celery_app.conf.task_routes = {
    'maintenance.*': {'queue': 'maintenance'},
}

# Auto-discover tasks from research_cache.tasks
celery_app.autodiscover_tasks(['research_cache.tasks'])
