"""
Structured content record stored alongside each scraped page.

The record is persisted as JSON (JSONB on PostgreSQL). `schema_version`
is written with every payload so future shapes can be migrated when read.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

STRUCTURED_CONTENT_VERSION = 1


class StructuredContent(BaseModel):
    """Facts pulled out of a page's text by the extraction helpers."""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = STRUCTURED_CONTENT_VERSION
    interview_rounds: Optional[int] = Field(
        None, ge=0, description="Largest 'N rounds/stages' figure mentioned"
    )
    interview_formats: List[str] = Field(
        default_factory=list,
        description="Formats mentioned, e.g. technical, behavioral, coding, system design",
    )
    mentions_offer: bool = False
    question_count: int = Field(0, ge=0)
    insight_count: int = Field(0, ge=0)

    @classmethod
    def from_json(cls, payload: Optional[dict[str, Any]]) -> "StructuredContent":
        """Load a stored payload, tolerating NULL and unknown keys."""
        return cls.model_validate(payload or {})
