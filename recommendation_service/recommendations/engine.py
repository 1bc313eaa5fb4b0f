"""
Reusable recommendation engine primitives.

This module lives inside recommendation_service/ so it can be shared by the
web application, batch jobs, or the CLI without introducing Flask
dependencies. Generation is a pure function of (strategy, candidate pool,
exclusion set): the same inputs always produce the same ranked list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AbstractSet, Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence
import logging
import math

from ..config import RecommendationConfig
from ..errors import InvalidRequestError, SchemeMismatchError
from ..features import cosine_similarity
from ..models import (
    ContentItem,
    ContentVector,
    EventKind,
    InteractionEvent,
    RecommendationList,
    RecommendationSource,
    RecommendedItem,
    UserProfile,
    utc_now,
)

_LOG = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Candidate:
    """A content item eligible for recommendation."""

    content_id: str
    vector: ContentVector
    published_at: datetime
    category: Optional[str] = None

    @classmethod
    def from_item(cls, item: ContentItem, vector: ContentVector) -> "Candidate":
        return cls(
            content_id=item.content_id,
            vector=vector,
            published_at=item.published_at,
            category=item.primary_category,
        )


@dataclass(slots=True)
class StrategyScore:
    """Per-strategy score for a single candidate."""

    value: float
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Neighbor:
    """Another user whose profile points the same way."""

    user_id: str
    similarity: float


@dataclass(slots=True)
class RankedCandidate:
    candidate: Candidate
    score: float
    reason: str

    @property
    def sort_key(self):
        return (-self.score, -self.candidate.published_at.timestamp(), self.candidate.content_id)


class RecommendationStrategy(Protocol):
    """Interface for plug-and-play recommendation strategies."""

    source: RecommendationSource

    def score(self, candidates: Sequence[Candidate]) -> Dict[str, StrategyScore]:
        """Return per-candidate scores; candidates left out are not recommendable."""


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class PersonalizedStrategy:
    """Cosine similarity between the user profile and each candidate vector."""

    source = RecommendationSource.PERSONALIZED

    def __init__(self, profile: UserProfile, scheme_version: str):
        if profile.scheme_version != scheme_version:
            raise SchemeMismatchError(f"profile:{profile.user_id}", profile.scheme_version, scheme_version)
        self.profile = profile
        self.scheme_version = scheme_version
        self._vector = profile.as_array()

    def score(self, candidates: Sequence[Candidate]) -> Dict[str, StrategyScore]:
        scores: Dict[str, StrategyScore] = {}
        for candidate in candidates:
            vector = candidate.vector
            if vector.scheme_version != self.scheme_version:
                raise SchemeMismatchError(candidate.content_id, vector.scheme_version, self.scheme_version)
            if vector.is_zero:
                continue
            similarity = cosine_similarity(self._vector, vector.as_array())
            if candidate.category:
                reason = f"Matches your interest in {candidate.category}"
            else:
                reason = "Matches content you engaged with"
            scores[candidate.content_id] = StrategyScore(
                value=similarity,
                reason=reason,
                metadata={"similarity": similarity},
            )
        return scores


class PopularityStrategy:
    """Non-personalized ranking used for cold-start users."""

    source = RecommendationSource.POPULARITY

    def __init__(self, popularity: Mapping[str, float], window_days: int):
        self.popularity = popularity
        self.window_days = window_days

    def score(self, candidates: Sequence[Candidate]) -> Dict[str, StrategyScore]:
        scores: Dict[str, StrategyScore] = {}
        for candidate in candidates:
            value = float(self.popularity.get(candidate.content_id, 0.0))
            if value > 0:
                reason = f"Popular in the last {self.window_days} days"
            else:
                reason = "Recently published"
            scores[candidate.content_id] = StrategyScore(value=value, reason=reason)
        return scores


class SimilarContentStrategy:
    """Item-to-item similarity against an anchor content vector."""

    source = RecommendationSource.SIMILAR_CONTENT

    def __init__(self, anchor: ContentVector, scheme_version: str):
        if anchor.scheme_version != scheme_version:
            raise SchemeMismatchError(anchor.content_id, anchor.scheme_version, scheme_version)
        self.anchor = anchor
        self.scheme_version = scheme_version
        self._vector = anchor.as_array()

    def score(self, candidates: Sequence[Candidate]) -> Dict[str, StrategyScore]:
        scores: Dict[str, StrategyScore] = {}
        for candidate in candidates:
            if candidate.content_id == self.anchor.content_id:
                continue
            vector = candidate.vector
            if vector.scheme_version != self.scheme_version:
                raise SchemeMismatchError(candidate.content_id, vector.scheme_version, self.scheme_version)
            if vector.is_zero:
                continue
            similarity = cosine_similarity(self._vector, vector.as_array())
            scores[candidate.content_id] = StrategyScore(
                value=similarity,
                reason=f"Similar to {self.anchor.content_id}",
            )
        return scores


class CollaborativeStrategy:
    """User-to-user filtering over the engagement of the nearest profiles.

    A candidate's score is the similarity-weighted engagement it received
    from the neighbors, normalized by the neighbors' total similarity.
    Candidates no neighbor engaged with are left out.
    """

    source = RecommendationSource.COLLABORATIVE

    def __init__(self, neighbors: Sequence[Neighbor], neighbor_engagement: Mapping[str, Mapping[str, float]]):
        self.neighbors = list(neighbors)
        self.neighbor_engagement = neighbor_engagement
        self._total_similarity = sum(n.similarity for n in self.neighbors)

    def score(self, candidates: Sequence[Candidate]) -> Dict[str, StrategyScore]:
        scores: Dict[str, StrategyScore] = {}
        if self._total_similarity <= 0:
            return scores
        for candidate in candidates:
            value = 0.0
            engaged = 0
            for neighbor in self.neighbors:
                weight = self.neighbor_engagement.get(neighbor.user_id, {}).get(candidate.content_id, 0.0)
                if weight > 0:
                    value += neighbor.similarity * weight
                    engaged += 1
            if engaged == 0:
                continue
            scores[candidate.content_id] = StrategyScore(
                value=value / self._total_similarity,
                reason="Users with similar tastes engaged with this",
                metadata={"similar_users_engaged": engaged},
            )
        return scores


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RecommendationEngine:
    """Ranks, filters and diversifies candidates into a top-K list."""

    def __init__(
        self,
        config: RecommendationConfig,
        scheme_version: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.scheme_version = scheme_version
        self.clock = clock

    def validate_k(self, k: Optional[int]) -> int:
        if k is None:
            return self.config.default_k
        if isinstance(k, bool) or not isinstance(k, int) or not 1 <= k <= self.config.max_k:
            raise InvalidRequestError(f"k must be between 1 and {self.config.max_k}, got {k!r}")
        return k

    def is_personalizable(self, profile: Optional[UserProfile]) -> bool:
        return (
            profile is not None
            and not profile.is_zero
            and profile.scheme_version == self.scheme_version
        )

    def generate(
        self,
        profile: Optional[UserProfile],
        candidates: Sequence[Candidate],
        k: Optional[int] = None,
        already_seen: AbstractSet[str] = frozenset(),
        popularity: Optional[Mapping[str, float]] = None,
        user_id: Optional[str] = None,
    ) -> RecommendationList:
        """Produce a ranked list for one user.

        Falls back to popularity ranking when the profile is missing or empty.
        """
        if self.is_personalizable(profile):
            strategy: RecommendationStrategy = PersonalizedStrategy(profile, self.scheme_version)
        else:
            strategy = PopularityStrategy(popularity or {}, self.config.popularity_window_days)
        owner = user_id or (profile.user_id if profile is not None else None)
        return self.rank(strategy, candidates, k, already_seen, user_id=owner)

    def rank(
        self,
        strategy: RecommendationStrategy,
        candidates: Sequence[Candidate],
        k: Optional[int] = None,
        already_seen: AbstractSet[str] = frozenset(),
        user_id: Optional[str] = None,
    ) -> RecommendationList:
        k = self.validate_k(k)

        pool: List[Candidate] = []
        seen_ids = set()
        for candidate in candidates:
            if candidate.content_id in already_seen or candidate.content_id in seen_ids:
                continue
            seen_ids.add(candidate.content_id)
            pool.append(candidate)

        scores = strategy.score(pool)
        ranked = [
            RankedCandidate(candidate=c, score=scores[c.content_id].value, reason=scores[c.content_id].reason)
            for c in pool
            if c.content_id in scores
        ]
        ranked.sort(key=lambda r: r.sort_key)
        selected = diversify(ranked, k, self.config.max_per_category)

        items = [
            RecommendedItem(
                content_id=r.candidate.content_id,
                score=round(r.score, 6),
                rank=position,
                category=r.candidate.category,
                reason=r.reason,
            )
            for position, r in enumerate(selected, start=1)
        ]
        _LOG.debug(
            "Generated %d/%d %s recommendations for %s from %d candidates",
            len(items), k, strategy.source.value, user_id, len(pool),
        )
        return RecommendationList(
            user_id=user_id,
            source=strategy.source,
            k=k,
            items=items,
            scheme_version=self.scheme_version,
            generated_at=self.clock(),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def diversify(ranked: Sequence[RankedCandidate], k: int, max_per_category: int) -> List[RankedCandidate]:
    """Greedy re-rank that avoids back-to-back categories.

    At each step the highest-ranked candidate whose category differs from the
    previous pick is chosen; if none exists the highest-ranked eligible one
    is used. No category may exceed ``max_per_category`` entries, so the
    result can be shorter than ``k``. Uncategorized items are never capped.
    """
    remaining = list(ranked)
    selected: List[RankedCandidate] = []
    per_category: Dict[str, int] = {}

    while remaining and len(selected) < k:
        previous = selected[-1].candidate.category if selected else None
        fallback = None
        pick = None
        for index, entry in enumerate(remaining):
            category = entry.candidate.category
            if category is not None and per_category.get(category, 0) >= max_per_category:
                continue
            if fallback is None:
                fallback = index
            if category is None or category != previous:
                pick = index
                break
        if pick is None:
            pick = fallback
        if pick is None:
            break
        chosen = remaining.pop(pick)
        if chosen.candidate.category is not None:
            per_category[chosen.candidate.category] = per_category.get(chosen.candidate.category, 0) + 1
        selected.append(chosen)

    return selected


def popularity_scores(
    events: Iterable[InteractionEvent],
    weights: Mapping[EventKind, float],
    now: datetime,
    window_days: int,
) -> Dict[str, float]:
    """Decayed, kind-weighted engagement per content id.

    Events inside the window count with weight halving every half window.
    """
    half_life_seconds = window_days * 86400.0 / 2
    start = now - timedelta(days=window_days)
    scores: Dict[str, float] = {}
    for event in events:
        if not start <= event.timestamp <= now:
            continue
        weight = weights[event.kind]
        if weight <= 0:
            continue
        age = (now - event.timestamp).total_seconds()
        decayed = weight * math.exp(-math.log(2) * (age / half_life_seconds))
        scores[event.content_id] = scores.get(event.content_id, 0.0) + decayed
    return scores


def nearest_profiles(
    profile: UserProfile,
    others: Iterable[UserProfile],
    limit: int,
    min_similarity: float,
) -> List[Neighbor]:
    """Most similar other profiles of the same scheme, best first.

    Profiles below ``min_similarity`` are dropped; ties go to the smaller
    user id so the neighbor set is reproducible.
    """
    anchor = profile.as_array()
    neighbors: List[Neighbor] = []
    for other in others:
        if (
            other.user_id == profile.user_id
            or other.is_zero
            or other.scheme_version != profile.scheme_version
            or other.dimension != profile.dimension
        ):
            continue
        similarity = cosine_similarity(anchor, other.as_array())
        if similarity >= min_similarity and similarity > 0:
            neighbors.append(Neighbor(user_id=other.user_id, similarity=similarity))
    neighbors.sort(key=lambda n: (-n.similarity, n.user_id))
    return neighbors[:limit]


def engagement_by_content(
    events: Iterable[InteractionEvent],
    weights: Mapping[EventKind, float],
) -> Dict[str, float]:
    """Kind-weighted engagement per content id, ignoring zero-weight kinds."""
    totals: Dict[str, float] = {}
    for event in events:
        weight = weights[event.kind]
        if weight > 0:
            totals[event.content_id] = totals.get(event.content_id, 0.0) + weight
    return totals


def build_candidates(items: Mapping[str, ContentItem], vectors: Mapping[str, ContentVector]) -> List[Candidate]:
    """Pair catalog items with their vectors; items without a vector are left out."""
    return [
        Candidate.from_item(items[content_id], vector)
        for content_id, vector in sorted(vectors.items())
        if content_id in items
    ]
