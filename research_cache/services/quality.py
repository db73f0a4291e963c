"""
Content Quality Assessor

Deterministic heuristic scoring of how useful a page is for interview
research, plus rule-based content-type classification. No I/O.

Scoring Signals (default weights, see QualityWeights):
------------------------------------------------------
1. Base score: 0.5
2. Length: < 20 words → 0.1 immediately; < 50 → -0.4;
   > 800 → +0.25; > 1500 → +0.15 more
3. Domain: glassdoor / blind / leetcode → +0.2;
   1point3acres / reddit.com/r/ → +0.15
4. Content type: interview_review +0.3, company_info +0.2, job_posting +0.1
5. Title: "interview"/"experience" → +0.1; "question"/"review" → +0.1
6. Interview patterns (every match counted): ≥ 3 → +0.3; ≥ 5 → +0.2 more
7. Co-occurrence: "interview process" + "interviewer asked" → +0.1;
   "question" + "answer" → +0.1

The sum is clamped to [0, 1].

Usage:
------
    assessor = QualityAssessor()
    content_type = assessor.classify_content_type(url, title, content)
    score = assessor.score(content, title, url, content_type)
"""

import re
from typing import List, Optional, Pattern

from research_cache.core.config import settings
from research_cache.models.scraped_url import ContentType, count_words
from research_cache.schemas.quality import (
    QualityAssessment,
    QualitySignal,
    QualityWeights,
)

INTERVIEW_PATTERNS: List[Pattern[str]] = [
    re.compile(r"interview\s+(process|experience|stages?)", re.IGNORECASE),
    re.compile(r"asked\s+me\s+(about|to)", re.IGNORECASE),
    re.compile(r"\d+\s+(rounds?|stages?|steps?)", re.IGNORECASE),
    re.compile(r"(technical|behavioral|coding)\s+(questions?|interview)", re.IGNORECASE),
    re.compile(r"hiring\s+(manager|process|decision)", re.IGNORECASE),
    re.compile(r"offer\s+(extended|received|rejected)", re.IGNORECASE),
]

REVIEW_DOMAINS = ("glassdoor", "blind", "1point3acres", "leetcode")
JOB_URL_MARKERS = ("jobs", "careers")
JOB_TITLE_MARKERS = ("job", "position")
NEWS_URL_MARKERS = ("blog", "news", "medium", "linkedin")
COMPANY_CONTENT_MARKERS = ("company culture", "about us")
COMPANY_TITLE_MARKERS = ("company", "culture")


def count_interview_patterns(content: str) -> int:
    """Total number of interview-pattern matches in the content."""
    return sum(len(pattern.findall(content)) for pattern in INTERVIEW_PATTERNS)


def _contains_any(haystack: str, needles) -> bool:
    return any(needle in haystack for needle in needles)


class QualityAssessor:
    """
    Heuristic quality scorer and content-type classifier.

    Weights come from the constructor or, by default, from
    settings.QUALITY_WEIGHTS, so they can be tuned without a code change.
    """

    def __init__(self, weights: Optional[QualityWeights] = None):
        self.weights = weights or settings.QUALITY_WEIGHTS

    def score(
        self,
        content: Optional[str],
        title: Optional[str],
        url: Optional[str],
        content_type: ContentType = ContentType.OTHER,
    ) -> float:
        """Quality score in [0, 1]. Same inputs always give the same score."""
        return self.assess(content, title, url, content_type).score

    def assess(
        self,
        content: Optional[str],
        title: Optional[str],
        url: Optional[str],
        content_type: ContentType = ContentType.OTHER,
    ) -> QualityAssessment:
        """
        Score content and explain which signals contributed.

        Args:
            content: Page text (None is treated as empty)
            title: Page title
            url: Page URL
            content_type: Classification from classify_content_type()

        Returns:
            QualityAssessment with the clamped score and per-signal deltas
        """
        w = self.weights
        content = content or ""
        title_lower = (title or "").lower()
        url_lower = (url or "").lower()
        content_lower = content.lower()

        word_count = count_words(content)

        if word_count < w.min_words:
            return QualityAssessment(
                score=w.min_words_score,
                raw_score=w.min_words_score,
                word_count=word_count,
                short_circuited=True,
                signals=[
                    QualitySignal(
                        name="too_short",
                        delta=w.min_words_score,
                        detail=f"{word_count} words",
                    )
                ],
            )

        signals: List[QualitySignal] = [QualitySignal(name="base", delta=w.base_score)]

        # Length
        if word_count > w.long_words:
            signals.append(QualitySignal(name="long_content", delta=w.long_bonus, detail=f"{word_count} words"))
        if word_count > w.very_long_words:
            signals.append(QualitySignal(name="very_long_content", delta=w.very_long_bonus))
        if word_count < w.short_words:
            signals.append(QualitySignal(name="short_content", delta=-w.short_penalty, detail=f"{word_count} words"))

        # Interview patterns
        pattern_matches = count_interview_patterns(content)
        if pattern_matches >= w.pattern_threshold:
            signals.append(QualitySignal(name="interview_patterns", delta=w.pattern_bonus, detail=f"{pattern_matches} matches"))
        if pattern_matches >= w.pattern_strong_threshold:
            signals.append(QualitySignal(name="interview_patterns_strong", delta=w.pattern_strong_bonus))

        # Content type
        type_bonus = w.content_type_bonus.get(ContentType(content_type).value, 0.0)
        if type_bonus:
            signals.append(QualitySignal(name="content_type", delta=type_bonus, detail=str(content_type)))

        # Domain
        if _contains_any(url_lower, w.primary_domains):
            signals.append(QualitySignal(name="primary_domain", delta=w.primary_domain_bonus))
        if _contains_any(url_lower, w.secondary_domains):
            signals.append(QualitySignal(name="secondary_domain", delta=w.secondary_domain_bonus))

        # Title
        if _contains_any(title_lower, w.title_experience_keywords):
            signals.append(QualitySignal(name="title_experience", delta=w.title_experience_bonus))
        if _contains_any(title_lower, w.title_review_keywords):
            signals.append(QualitySignal(name="title_review", delta=w.title_review_bonus))

        # Co-occurrence
        if all(phrase in content_lower for phrase in w.process_phrases):
            signals.append(QualitySignal(name="process_phrases", delta=w.process_bonus))
        if all(phrase in content_lower for phrase in w.qa_phrases):
            signals.append(QualitySignal(name="question_answer", delta=w.qa_bonus))

        raw_score = sum(signal.delta for signal in signals)

        return QualityAssessment(
            score=max(0.0, min(1.0, raw_score)),
            raw_score=raw_score,
            word_count=word_count,
            pattern_matches=pattern_matches,
            signals=signals,
        )

    def classify_content_type(
        self,
        url: Optional[str],
        title: Optional[str],
        content: Optional[str],
    ) -> ContentType:
        """
        Classify a page by URL, title and content. First matching rule wins.

        Rules (in order):
        1. Review site AND ("interview" in title or "interview experience"
           in content) → INTERVIEW_REVIEW
        2. jobs/careers URL or job/position title → JOB_POSTING
        3. blog/news/medium/linkedin URL → NEWS
        4. "company culture"/"about us" content or company/culture title
           → COMPANY_INFO
        5. "interview" in title or "interview process" in content
           → INTERVIEW_REVIEW
        6. OTHER
        """
        url_lower = (url or "").lower()
        title_lower = (title or "").lower()
        content_lower = (content or "").lower()

        if _contains_any(url_lower, REVIEW_DOMAINS) and (
            "interview" in title_lower or "interview experience" in content_lower
        ):
            return ContentType.INTERVIEW_REVIEW

        if _contains_any(url_lower, JOB_URL_MARKERS) or _contains_any(title_lower, JOB_TITLE_MARKERS):
            return ContentType.JOB_POSTING

        if _contains_any(url_lower, NEWS_URL_MARKERS):
            return ContentType.NEWS

        if _contains_any(content_lower, COMPANY_CONTENT_MARKERS) or _contains_any(title_lower, COMPANY_TITLE_MARKERS):
            return ContentType.COMPANY_INFO

        if "interview" in title_lower or "interview process" in content_lower:
            return ContentType.INTERVIEW_REVIEW

        return ContentType.OTHER
