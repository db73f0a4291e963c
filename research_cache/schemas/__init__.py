"""
Pydantic schemas for component inputs and results.

Import from the submodules directly:

    from research_cache.schemas.research import ResearchContext, ReuseResult
    from research_cache.schemas.quality import QualityWeights
"""
