"""Business logic services."""

from research_cache.services.content_store import ContentStore
from research_cache.services.quality import QualityAssessor
from research_cache.services.research_cache import ResearchCache
from research_cache.services.reuse_selector import ReuseSelector
from research_cache.services.usage_recorder import UsageRecorder

__all__ = [
    "ContentStore",
    "QualityAssessor",
    "ReuseSelector",
    "UsageRecorder",
    "ResearchCache",
]
