"""
Content Extraction Helpers

Pattern-based extraction of interview questions, tips and structured facts
from page text. Pure functions, no I/O.

Extraction Rules:
-----------------
- Questions: text ending in '?' after a "Q1:", "Question:", "They asked",
  or numbered-list marker. Unique, 10 < length < 500, at most 20.
- Insights: text up to the next full stop after "Tip:", "Key insight:",
  "Takeaway:", "Pro tip:" and similar markers. Unique, 15 < length < 300,
  at most 10.
- Structured facts: interview round count, formats mentioned and whether an
  offer is discussed, stored as StructuredContent.
"""

import re
from typing import Iterable, List, Optional, Pattern

from research_cache.schemas.structured import StructuredContent

MAX_QUESTIONS = 20
MIN_QUESTION_LENGTH = 10
MAX_QUESTION_LENGTH = 500

MAX_INSIGHTS = 10
MIN_INSIGHT_LENGTH = 15
MAX_INSIGHT_LENGTH = 300

QUESTION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:Q\d*[:.]?\s*|Question\s*\d*[:.]?\s*)(.*?\?)", re.IGNORECASE),
    re.compile(r"(?:They asked|Asked|Question was|The question)[:\s]+(.*?\?)", re.IGNORECASE),
    re.compile(r"(?:^|\n)\s*\d+\.\s*(.*?\?)", re.MULTILINE),
    re.compile(r"(?:Interview question|Question)[:\s]+(.*?\?)", re.IGNORECASE),
]

INSIGHT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:Key insight|Important|Note|Tip|Advice)[:\s]+(.*?)(?:\.|$)", re.IGNORECASE),
    re.compile(r"(?:What I learned|Takeaway|Key point)[:\s]+(.*?)(?:\.|$)", re.IGNORECASE),
    re.compile(r"(?:Pro tip|Remember|Important to note)[:\s]+(.*?)(?:\.|$)", re.IGNORECASE),
]

ROUNDS_PATTERN = re.compile(r"\b(\d{1,2})\s+(?:rounds?|stages?|steps?)\b", re.IGNORECASE)
OFFER_PATTERN = re.compile(r"\boffer\s+(?:extended|received|rejected|accepted|declined)\b", re.IGNORECASE)

# Format label -> phrases that signal it
INTERVIEW_FORMATS = {
    "technical": ("technical interview", "technical question", "technical round"),
    "behavioral": ("behavioral", "behavioural"),
    "coding": ("coding interview", "coding question", "coding challenge", "live coding"),
    "system_design": ("system design",),
    "phone_screen": ("phone screen", "phone interview"),
    "onsite": ("onsite", "on-site"),
    "take_home": ("take-home", "take home"),
}


def _collect(
    content: str,
    patterns: Iterable[Pattern[str]],
    min_length: int,
    max_length: int,
    limit: int,
) -> List[str]:
    """Run every pattern, keep first-seen unique captures within the length window."""
    seen: dict[str, None] = {}
    for pattern in patterns:
        for match in pattern.finditer(content):
            captured = (match.group(1) or "").strip()
            if min_length < len(captured) < max_length:
                seen.setdefault(captured, None)
    return list(seen)[:limit]


def extract_questions(content: Optional[str]) -> List[str]:
    """
    Extract interview questions from page text.

    Args:
        content: Page text (may be empty)

    Returns:
        Unique questions in order of discovery, at most MAX_QUESTIONS

    Example:
        >>> extract_questions("Q1: How would you design a URL shortener?")
        ['How would you design a URL shortener?']
    """
    if not content:
        return []
    return _collect(
        content,
        QUESTION_PATTERNS,
        MIN_QUESTION_LENGTH,
        MAX_QUESTION_LENGTH,
        MAX_QUESTIONS,
    )


def extract_insights(content: Optional[str]) -> List[str]:
    """
    Extract tips and takeaways from page text.

    Returns:
        Unique insights in order of discovery, at most MAX_INSIGHTS
    """
    if not content:
        return []
    return _collect(
        content,
        INSIGHT_PATTERNS,
        MIN_INSIGHT_LENGTH,
        MAX_INSIGHT_LENGTH,
        MAX_INSIGHTS,
    )


def detect_interview_rounds(content: str) -> Optional[int]:
    """Largest plausible 'N rounds/stages/steps' figure, or None."""
    rounds = [int(m.group(1)) for m in ROUNDS_PATTERN.finditer(content)]
    rounds = [r for r in rounds if 0 < r <= 15]
    return max(rounds) if rounds else None


def detect_interview_formats(content: str) -> List[str]:
    """Format labels mentioned in the text, in INTERVIEW_FORMATS order."""
    content_lower = content.lower()
    return [
        label
        for label, phrases in INTERVIEW_FORMATS.items()
        if any(phrase in content_lower for phrase in phrases)
    ]


def build_structured_content(
    content: Optional[str],
    questions: Optional[List[str]] = None,
    insights: Optional[List[str]] = None,
) -> StructuredContent:
    """
    Build the StructuredContent record for a page.

    Args:
        content: Page text
        questions: Already extracted questions (extracted here when None)
        insights: Already extracted insights (extracted here when None)
    """
    if not content:
        return StructuredContent()

    if questions is None:
        questions = extract_questions(content)
    if insights is None:
        insights = extract_insights(content)

    return StructuredContent(
        interview_rounds=detect_interview_rounds(content),
        interview_formats=detect_interview_formats(content),
        mentions_offer=bool(OFFER_PATTERN.search(content)),
        question_count=len(questions),
        insight_count=len(insights),
    )
