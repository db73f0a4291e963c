"""
Pydantic schemas for content quality scoring.

QualityWeights holds every tunable constant used by the QualityAssessor.
Defaults can be overridden through settings.QUALITY_WEIGHTS or the
QualityAssessor constructor.
"""

from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field


class QualityWeights(BaseModel):
    """Weights and thresholds for the heuristic quality score."""

    model_config = ConfigDict(frozen=True)

    base_score: float = 0.5

    # Length signal (word counts)
    min_words: int = 20
    min_words_score: float = 0.1  # Returned immediately below min_words
    short_words: int = 50
    short_penalty: float = 0.4
    long_words: int = 800
    long_bonus: float = 0.25
    very_long_words: int = 1500
    very_long_bonus: float = 0.15

    # Domain-relevance signal (substring match against the URL)
    primary_domains: Tuple[str, ...] = ("glassdoor", "blind", "leetcode")
    primary_domain_bonus: float = 0.2
    secondary_domains: Tuple[str, ...] = ("1point3acres", "reddit.com/r/")
    secondary_domain_bonus: float = 0.15

    # Content-type signal, keyed by ContentType value
    content_type_bonus: Dict[str, float] = Field(
        default_factory=lambda: {
            "interview_review": 0.3,
            "company_info": 0.2,
            "job_posting": 0.1,
            "news": 0.0,
            "other": 0.0,
        }
    )

    # Title keyword signal
    title_experience_keywords: Tuple[str, ...] = ("interview", "experience")
    title_experience_bonus: float = 0.1
    title_review_keywords: Tuple[str, ...] = ("question", "review")
    title_review_bonus: float = 0.1

    # Structured interview-pattern signal
    pattern_threshold: int = 3
    pattern_bonus: float = 0.3
    pattern_strong_threshold: int = 5
    pattern_strong_bonus: float = 0.2

    # Co-occurrence signal
    process_phrases: Tuple[str, str] = ("interview process", "interviewer asked")
    process_bonus: float = 0.1
    qa_phrases: Tuple[str, str] = ("question", "answer")
    qa_bonus: float = 0.1


class QualitySignal(BaseModel):
    """One named contribution to a quality score."""

    name: str
    delta: float
    detail: str = ""


class QualityAssessment(BaseModel):
    """
    Explainable result of scoring one piece of content.

    `raw_score` is the unclamped sum; `score` is the clamped value stored in
    the Content Store.
    """

    score: float = Field(..., ge=0.0, le=1.0)
    raw_score: float
    word_count: int
    pattern_matches: int = 0
    short_circuited: bool = False
    signals: List[QualitySignal] = Field(default_factory=list)
