"""
Recommendation generation package.

Provides the ranking engine, the per-user service and the chunked batch
runner without creating Flask dependencies.
"""

from .engine import (
    Candidate,
    CollaborativeStrategy,
    Neighbor,
    PersonalizedStrategy,
    PopularityStrategy,
    RankedCandidate,
    RecommendationEngine,
    RecommendationStrategy,
    SimilarContentStrategy,
    StrategyScore,
    build_candidates,
    diversify,
    engagement_by_content,
    nearest_profiles,
    popularity_scores,
)
from .service import RecommendationService
from .batch import BatchRecommendationRunner, partition

__all__ = [
    "BatchRecommendationRunner",
    "Candidate",
    "CollaborativeStrategy",
    "Neighbor",
    "PersonalizedStrategy",
    "PopularityStrategy",
    "RankedCandidate",
    "RecommendationEngine",
    "RecommendationService",
    "RecommendationStrategy",
    "SimilarContentStrategy",
    "StrategyScore",
    "build_candidates",
    "diversify",
    "engagement_by_content",
    "nearest_profiles",
    "partition",
    "popularity_scores",
]
