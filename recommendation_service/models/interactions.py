"""
Interaction log data models.

Event kinds and recommendation sources are closed enums. Every consumer that
weights or grades events maps all members explicitly, so adding a member
fails loudly wherever it is not handled.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from .common import ensure_utc, utc_now


class EventKind(str, Enum):
    """Allowed interaction event kinds."""

    IMPRESSION = "impression"
    CLICK = "click"
    COMPLETION = "completion"
    LIKE = "like"
    COMMENT = "comment"

    @classmethod
    def is_valid(cls, kind: str) -> bool:
        """Check if an event kind string is valid."""
        try:
            cls(kind)
            return True
        except ValueError:
            return False

    @classmethod
    def get_allowed_kinds(cls) -> set[str]:
        """Get all allowed event kind strings."""
        return {e.value for e in cls}

    @property
    def is_positive(self) -> bool:
        """Whether the event counts as a relevant outcome for its content."""
        if self is EventKind.IMPRESSION:
            return False
        if self in (EventKind.CLICK, EventKind.COMPLETION, EventKind.LIKE, EventKind.COMMENT):
            return True
        raise ValueError(f"Unhandled event kind: {self}")

    @property
    def relevance_grade(self) -> int:
        """Graded relevance used by NDCG."""
        if self is EventKind.IMPRESSION:
            return 0
        if self is EventKind.CLICK:
            return 1
        if self is EventKind.COMPLETION:
            return 2
        if self in (EventKind.LIKE, EventKind.COMMENT):
            return 3
        raise ValueError(f"Unhandled event kind: {self}")


class RecommendationSource(str, Enum):
    """Generation path that produced a recommendation list."""

    PERSONALIZED = "personalized"
    POPULARITY = "popularity"
    SIMILAR_CONTENT = "similar_content"
    COLLABORATIVE = "collaborative"

    @classmethod
    def is_valid(cls, source: str) -> bool:
        try:
            cls(source)
            return True
        except ValueError:
            return False


class InteractionEvent(BaseModel):
    """Append-only interaction record."""
    event_id: str = Field(default_factory=lambda: uuid4().hex, description="Unique event identifier")
    user_id: str = Field(min_length=1, description="User who performed the interaction")
    content_id: str = Field(min_length=1, description="Content the interaction refers to")
    kind: EventKind = Field(description="Event kind")
    timestamp: datetime = Field(default_factory=utc_now, description="When the interaction happened (UTC)")
    source: Optional[RecommendationSource] = Field(
        default=None, description="Recommendation source that produced the impression, if any"
    )
    recommendation_id: Optional[str] = Field(
        default=None, description="Identifier of the delivered recommendation list"
    )
    position: Optional[int] = Field(default=None, ge=1, description="1-based rank within the delivered list")
    engagement: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, description="Collaborator-supplied bounded engagement score"
    )
    dwell_seconds: Optional[float] = Field(default=None, ge=0.0, description="Time spent on the content")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Free-form collaborator metadata")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)
