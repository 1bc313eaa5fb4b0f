"""
Behavioral anomaly scoring.

Three signals, each in [0, 1], are combined with configurable weights:

- rate: events per minute in the window against the population baseline,
  as a z-score scaled by ``rate_z_ceiling``
- category_deviation: total variation distance between the window's
  category mix and the user's historical profile
- abuse: the strongest of rapid identical repeats, machine-regular
  timing, and abuse signals supplied by collaborators

Impressions are generated by delivery, not by the user, so only
user-initiated events are scored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np

from ..config import AnomalyConfig
from ..models import (
    AnomalyScore,
    EventKind,
    InteractionEvent,
    PopulationBaseline,
    RiskLevel,
    TimeWindow,
    UserProfile,
    utc_now,
)

_LOG = logging.getLogger(__name__)

ABUSE_META_KEY = "abuse_signal"


def user_actions(events: Iterable[InteractionEvent]) -> List[InteractionEvent]:
    """User-initiated events ordered by time."""
    actions = [e for e in events if e.kind is not EventKind.IMPRESSION]
    actions.sort(key=lambda e: (e.timestamp, e.event_id))
    return actions


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class AnomalyScorer:
    """Scores a user's recent behavior against population and personal baselines."""

    def __init__(self, config: AnomalyConfig):
        self.config = config

    def window_ending(self, now: datetime) -> TimeWindow:
        return TimeWindow(
            start=now - timedelta(minutes=self.config.window_minutes),
            end=now + timedelta(microseconds=1),
        )

    def default_baseline(self) -> PopulationBaseline:
        return PopulationBaseline(
            mean_rate=self.config.default_mean_rate,
            std_rate=self.config.default_std_rate,
            sample_size=0,
            window_minutes=self.config.window_minutes,
            is_default=True,
        )

    def score(
        self,
        user_id: str,
        recent_events: Sequence[InteractionEvent],
        profile: Optional[UserProfile] = None,
        baseline: Optional[PopulationBaseline] = None,
        content_categories: Optional[Mapping[str, Optional[str]]] = None,
        abuse_signals: Iterable[float] = (),
        now: Optional[datetime] = None,
    ) -> AnomalyScore:
        """Score one evaluation window for one user."""
        now = now or utc_now()
        baseline = baseline or self.default_baseline()
        actions = user_actions(e for e in recent_events if e.user_id == user_id)

        signals = {
            "rate": self.rate_signal(actions, baseline),
            "category_deviation": self.category_deviation(actions, profile, content_categories or {}),
            "abuse": self.abuse_signal(actions, abuse_signals),
        }
        weights = self.config.weights
        total_weight = sum(weights.values())
        score = _clamp(sum(weights[name] * value for name, value in signals.items()) / total_weight)

        reason = None
        if score >= self.config.threshold:
            reason = self._explain(score, signals, actions, baseline)

        return AnomalyScore(
            user_id=user_id,
            score=round(score, 6),
            signals={name: round(value, 6) for name, value in signals.items()},
            risk_level=RiskLevel.from_score(score),
            reason=reason,
            window_event_count=len(actions),
            evaluated_at=now,
        )

    # Signals ------------------------------------------------------------------

    def rate_signal(self, actions: Sequence[InteractionEvent], baseline: PopulationBaseline) -> float:
        rate = len(actions) / float(self.config.window_minutes)
        std = max(baseline.std_rate, 1e-9)
        z = (rate - baseline.mean_rate) / std
        return _clamp(z / self.config.rate_z_ceiling)

    def category_deviation(
        self,
        actions: Sequence[InteractionEvent],
        profile: Optional[UserProfile],
        content_categories: Mapping[str, Optional[str]],
    ) -> float:
        if profile is None:
            return 0.0
        history = profile.category_distribution()
        if not history:
            return 0.0
        counts: Dict[str, int] = {}
        for event in actions:
            category = content_categories.get(event.content_id)
            if category:
                counts[category] = counts.get(category, 0) + 1
        total = sum(counts.values())
        if total == 0:
            return 0.0
        current = {name: count / total for name, count in counts.items()}
        names = set(history) | set(current)
        return _clamp(0.5 * sum(abs(current.get(n, 0.0) - history.get(n, 0.0)) for n in names))

    def abuse_signal(self, actions: Sequence[InteractionEvent], abuse_signals: Iterable[float] = ()) -> float:
        return max(
            self._rapid_repeat_signal(actions),
            self._regular_interval_signal(actions),
            self._explicit_signal(actions, abuse_signals),
        )

    def _rapid_repeat_signal(self, actions: Sequence[InteractionEvent]) -> float:
        last_seen: Dict[tuple, datetime] = {}
        repeats = 0
        for event in actions:
            key = (event.content_id, event.kind)
            previous = last_seen.get(key)
            if previous is not None and (event.timestamp - previous).total_seconds() <= self.config.rapid_repeat_seconds:
                repeats += 1
            last_seen[key] = event.timestamp
        return _clamp(repeats / self.config.repeat_ceiling)

    def _regular_interval_signal(self, actions: Sequence[InteractionEvent]) -> float:
        if len(actions) < self.config.min_events_for_pattern:
            return 0.0
        stamps = np.array([e.timestamp.timestamp() for e in actions])
        gaps = np.diff(stamps)
        if float(np.std(gaps)) < self.config.regular_interval_std_seconds:
            return 1.0
        return 0.0

    @staticmethod
    def _explicit_signal(actions: Sequence[InteractionEvent], abuse_signals: Iterable[float]) -> float:
        values = [float(v) for v in abuse_signals]
        for event in actions:
            raw = event.meta.get(ABUSE_META_KEY)
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                values.append(float(raw))
        return _clamp(max(values, default=0.0))

    def _explain(
        self,
        score: float,
        signals: Mapping[str, float],
        actions: Sequence[InteractionEvent],
        baseline: PopulationBaseline,
    ) -> str:
        parts = []
        if signals["rate"] > 0:
            rate = len(actions) / float(self.config.window_minutes)
            parts.append(f"{rate:.2f} actions/min vs baseline {baseline.mean_rate:.2f}")
        if signals["category_deviation"] > 0:
            parts.append(f"category mix deviates {signals['category_deviation']:.2f} from history")
        if signals["abuse"] > 0:
            parts.append(f"abuse signal {signals['abuse']:.2f}")
        detail = "; ".join(parts) or "combined signals"
        return f"Anomaly score {score:.2f} >= {self.config.threshold:.2f}: {detail}"
