"""
Data Models for Event Tracking

Defines the payload accepted from the interaction collector.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import ValidationError

from recommendation_service.models import (
    EventKind,
    InteractionEvent,
    RecommendationSource,
    parse_timestamp,
)


@dataclass
class EventPayload:
    """Payload structure for incoming interaction events."""

    type: str
    content_id: Optional[str] = None
    ts: Optional[str] = None
    source: Optional[str] = None
    recommendation_id: Optional[str] = None
    position: Optional[int] = None
    engagement: Optional[float] = None
    dwell_seconds: Optional[float] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EventPayload':
        """Create a payload from a request body; accepts 'kind' as an alias of 'type'."""
        return cls(
            type=str(data.get("type") or data.get("kind") or "").strip(),
            content_id=data.get("content_id"),
            ts=data.get("ts"),
            source=data.get("source"),
            recommendation_id=data.get("recommendation_id"),
            position=data.get("position"),
            engagement=data.get("engagement"),
            dwell_seconds=data.get("dwell_seconds"),
            meta=data.get("meta") or {},
        )

    def validate(self) -> Optional[str]:
        """Return an error message, or None when the payload is acceptable."""
        if not EventKind.is_valid(self.type):
            return f"invalid event type: {self.type!r}"
        if not isinstance(self.content_id, str) or not self.content_id.strip():
            return "content_id is required"
        if self.source is not None and not RecommendationSource.is_valid(str(self.source)):
            return f"invalid source: {self.source!r}"
        if self.ts is not None and parse_timestamp(self.ts) is None:
            return f"invalid timestamp: {self.ts!r}"
        if not isinstance(self.meta, dict):
            return "meta must be an object"
        return None

    def to_event(self, user_id: str) -> InteractionEvent:
        """Build the log record; raises ValueError on out-of-range fields."""
        data: Dict[str, Any] = {
            "user_id": user_id,
            "content_id": self.content_id.strip(),
            "kind": self.type,
            "source": self.source,
            "recommendation_id": self.recommendation_id,
            "position": self.position,
            "engagement": self.engagement,
            "dwell_seconds": self.dwell_seconds,
            "meta": self.meta,
        }
        if self.ts is not None:
            data["timestamp"] = parse_timestamp(self.ts)
        try:
            return InteractionEvent.model_validate(data)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc
