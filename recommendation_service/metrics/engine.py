"""
Retrospective recommendation quality metrics.

A delivered list is the set of impressions sharing a ``recommendation_id``
(impressions without one are grouped per user and source). An item is
relevant to a user when the user produced a positive outcome event for it in
the window. Ranking metrics are averaged over each user's lists, then over
users, so heavy users do not dominate. Users without impressions in the
window contribute nothing. A metric with no defined value reports 0.0 and is
listed in ``insufficient_data``.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..catalog import CatalogService
from ..errors import InvalidRequestError
from ..features import cosine_similarity
from ..models import (
    ContentVector,
    EventKind,
    InteractionEvent,
    MetricsReport,
    RecommendationSource,
    TimeWindow,
    utc_now,
)
from ..storage import InteractionLog, VectorStore

_LOG = logging.getLogger(__name__)

RANKING_METRICS = ("precision_at_k", "recall_at_k", "ndcg_at_k", "diversity")
ALL_METRICS = (
    "precision_at_k",
    "recall_at_k",
    "f1",
    "ndcg_at_k",
    "ctr",
    "avg_engagement",
    "diversity",
    "coverage",
)


@dataclass(slots=True)
class DeliveredList:
    """Impressions of one delivered recommendation list."""

    user_id: str
    source: Optional[RecommendationSource]
    impressions: List[InteractionEvent] = field(default_factory=list)

    def ranked_content(self) -> List[str]:
        ordered = sorted(
            self.impressions,
            key=lambda e: (e.position if e.position is not None else math.inf, e.timestamp, e.content_id),
        )
        return list(dict.fromkeys(e.content_id for e in ordered))


@dataclass(slots=True)
class _Outcomes:
    """Per-user relevance, grades, clicks and engagement in the window."""

    relevant: Dict[str, Set[str]] = field(default_factory=lambda: defaultdict(set))
    grades: Dict[Tuple[str, str], int] = field(default_factory=dict)
    clicks: Dict[Tuple[str, str], List[datetime]] = field(default_factory=lambda: defaultdict(list))
    engagement: Dict[Tuple[str, str], float] = field(default_factory=dict)


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def dcg(grades: Sequence[float]) -> float:
    return sum(g / math.log2(rank + 1) for rank, g in enumerate(grades, start=1))


def ndcg(grades: Sequence[float]) -> Optional[float]:
    """NDCG against the ideal ordering of the same grades; None when no item is relevant."""
    ideal = dcg(sorted(grades, reverse=True))
    if ideal <= 0:
        return None
    return dcg(grades) / ideal


def intra_list_diversity(vectors: Sequence[ContentVector]) -> Optional[float]:
    """Mean pairwise (1 - cosine); None with fewer than two comparable vectors."""
    arrays = [v.as_array() for v in vectors if not v.is_zero]
    if len(arrays) < 2:
        return None
    distances = [1.0 - cosine_similarity(a, b) for a, b in combinations(arrays, 2)]
    return max(0.0, min(1.0, sum(distances) / len(distances)))


class MetricsEngine:
    """Read-only computation of ranking-quality and engagement metrics."""

    def __init__(
        self,
        interaction_log: InteractionLog,
        vector_store: VectorStore,
        catalog: CatalogService,
        scheme_version: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.interaction_log = interaction_log
        self.vector_store = vector_store
        self.catalog = catalog
        self.scheme_version = scheme_version
        self.clock = clock

    def compute(
        self,
        k: int,
        window: TimeWindow,
        source: Optional[RecommendationSource] = None,
        events: Optional[Sequence[InteractionEvent]] = None,
    ) -> MetricsReport:
        """Compute every metric over impressions delivered in ``window``."""
        if k < 1:
            raise InvalidRequestError("k must be positive")
        if events is None:
            events = self.interaction_log.events_in(window)
        events = [e for e in events if window.contains(e.timestamp)]

        impressions = [
            e for e in events
            if e.kind is EventKind.IMPRESSION and (source is None or e.source == source)
        ]
        outcomes = self._collect_outcomes(events)
        lists = self._group_lists(impressions)
        catalog_size = self.catalog.catalog_size()

        report = MetricsReport(
            k=k,
            window_start=window.start,
            window_end=window.end,
            source=source,
            impressions=len(impressions),
            lists_evaluated=len(lists),
            catalog_size=catalog_size,
            generated_at=self.clock(),
        )
        insufficient: List[str] = []

        if not impressions:
            report.insufficient_data = list(ALL_METRICS)
            return report

        per_user: Dict[str, Dict[str, List[float]]] = defaultdict(lambda: defaultdict(list))
        vector_cache: Dict[str, Optional[ContentVector]] = {}
        for delivered in lists:
            top_k = delivered.ranked_content()[:k]
            relevant = outcomes.relevant.get(delivered.user_id, set())
            hits = sum(1 for cid in top_k if cid in relevant)
            bucket = per_user[delivered.user_id]
            bucket["precision_at_k"].append(hits / k)
            if relevant:
                bucket["recall_at_k"].append(hits / len(relevant))
            grades = [outcomes.grades.get((delivered.user_id, cid), 0) for cid in top_k]
            if (value := ndcg(grades)) is not None:
                bucket["ndcg_at_k"].append(value)
            vectors = [v for cid in top_k if (v := self._vector(cid, vector_cache)) is not None]
            if (value := intra_list_diversity(vectors)) is not None:
                bucket["diversity"].append(value)

        report.users_evaluated = len(per_user)
        aggregated: Dict[str, Optional[float]] = {}
        for metric in RANKING_METRICS:
            user_means = [m for values in per_user.values() if (m := _mean(values[metric])) is not None]
            aggregated[metric] = _mean(user_means)
            if aggregated[metric] is None:
                insufficient.append(metric)

        precision = aggregated["precision_at_k"]
        recall = aggregated["recall_at_k"]
        report.precision_at_k = precision or 0.0
        report.recall_at_k = recall or 0.0
        report.ndcg_at_k = aggregated["ndcg_at_k"] or 0.0
        report.diversity = aggregated["diversity"] or 0.0
        if precision is None or recall is None:
            insufficient.append("f1")
        elif precision + recall > 0:
            report.f1 = 2 * precision * recall / (precision + recall)

        clicked = 0
        engagement_total = 0.0
        for event in impressions:
            key = (event.user_id, event.content_id)
            if any(ts >= event.timestamp for ts in outcomes.clicks.get(key, ())):
                clicked += 1
            engagement_total += outcomes.engagement.get(key, 0.0)
        report.ctr = clicked / len(impressions)
        report.avg_engagement = engagement_total / len(impressions)

        if catalog_size > 0:
            shown = {e.content_id for e in impressions}
            report.coverage = min(1.0, len(shown) / catalog_size)
        else:
            insufficient.append("coverage")

        report.insufficient_data = [m for m in ALL_METRICS if m in insufficient]
        return report

    def compute_by_source(self, window: TimeWindow, k: int) -> Dict[RecommendationSource, MetricsReport]:
        """One report per recommendation source, including sources with no data."""
        events = self.interaction_log.events_in(window)
        reports = {}
        for source in RecommendationSource:
            reports[source] = self.compute(k, window, source=source, events=events)
            if reports[source].impressions == 0:
                _LOG.info("No impressions for source %s in window", source.value)
        return reports

    # Internals ----------------------------------------------------------------

    @staticmethod
    def _collect_outcomes(events: Sequence[InteractionEvent]) -> _Outcomes:
        outcomes = _Outcomes()
        for event in events:
            key = (event.user_id, event.content_id)
            if event.engagement is not None:
                outcomes.engagement[key] = max(outcomes.engagement.get(key, 0.0), event.engagement)
            if not event.kind.is_positive:
                continue
            outcomes.relevant[event.user_id].add(event.content_id)
            outcomes.grades[key] = max(outcomes.grades.get(key, 0), event.kind.relevance_grade)
            if event.kind is EventKind.CLICK:
                outcomes.clicks[key].append(event.timestamp)
        return outcomes

    @staticmethod
    def _group_lists(impressions: Sequence[InteractionEvent]) -> List[DeliveredList]:
        grouped: Dict[Tuple, DeliveredList] = {}
        for event in impressions:
            if event.recommendation_id:
                key = ("list", event.user_id, event.recommendation_id)
            else:
                key = ("adhoc", event.user_id, event.source.value if event.source else None)
            delivered = grouped.setdefault(key, DeliveredList(user_id=event.user_id, source=event.source))
            delivered.impressions.append(event)
        return list(grouped.values())

    def _vector(self, content_id: str, cache: Dict[str, Optional[ContentVector]]) -> Optional[ContentVector]:
        if content_id not in cache:
            vector = self.vector_store.get(content_id)
            if vector is not None and vector.scheme_version != self.scheme_version:
                vector = None
            cache[content_id] = vector
        return cache[content_id]
