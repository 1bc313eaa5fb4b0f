"""
Models package for the recommendation and trust-scoring engine.

Every persisted record is a Pydantic model serialized with
``model_dump(mode="json")``.
"""

from .common import ensure_utc, parse_timestamp, utc_now

from .content import ContentItem, ContentVector

from .interactions import EventKind, InteractionEvent, RecommendationSource

from .profiles import UserProfile

from .access import (
    AccessRecord,
    AccessState,
    AccessTransition,
    AnomalyScore,
    PopulationBaseline,
    RiskLevel,
)

from .recommendations import (
    JobStatus,
    RecommendationBatchJob,
    RecommendationList,
    RecommendedItem,
)

from .reports import MetricsReport, TimeWindow

__all__ = [
    "AccessRecord",
    "AccessState",
    "AccessTransition",
    "AnomalyScore",
    "ContentItem",
    "ContentVector",
    "EventKind",
    "InteractionEvent",
    "JobStatus",
    "MetricsReport",
    "PopulationBaseline",
    "RecommendationBatchJob",
    "RecommendationList",
    "RecommendationSource",
    "RecommendedItem",
    "RiskLevel",
    "TimeWindow",
    "UserProfile",
    "ensure_utc",
    "parse_timestamp",
    "utc_now",
]
