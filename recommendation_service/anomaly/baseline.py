"""
Population event-rate baseline.

Refreshed by a low-frequency batch so that inline anomaly evaluation never
aggregates across users.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import numpy as np

from ..config import AnomalyConfig
from ..models import PopulationBaseline, TimeWindow, utc_now
from ..storage import BaselineStore, InteractionLog
from .scorer import user_actions

_LOG = logging.getLogger(__name__)


class BaselineService:
    """Computes and serves the population event-rate baseline."""

    def __init__(
        self,
        config: AnomalyConfig,
        interaction_log: InteractionLog,
        baseline_store: BaselineStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.interaction_log = interaction_log
        self.baseline_store = baseline_store
        self.clock = clock

    def current(self) -> PopulationBaseline:
        """Stored baseline, or the configured defaults when none was computed yet."""
        stored = self.baseline_store.current()
        if stored is not None and stored.window_minutes == self.config.window_minutes:
            return stored
        return self._default()

    def refresh(self, now: Optional[datetime] = None) -> PopulationBaseline:
        """Recompute mean and std of per-user windowed action rates."""
        now = now or self.clock()
        window = TimeWindow(start=now - timedelta(days=self.config.baseline_days), end=now)
        window_seconds = self.config.window_minutes * 60.0

        rates: List[float] = []
        for user_id in self.interaction_log.user_ids(active_since=window.start):
            buckets: Dict[int, int] = {}
            for event in user_actions(self.interaction_log.events_for(user_id, window=window)):
                index = int((event.timestamp - window.start).total_seconds() // window_seconds)
                buckets[index] = buckets.get(index, 0) + 1
            rates.extend(count / float(self.config.window_minutes) for count in buckets.values())

        if len(rates) < self.config.baseline_min_samples:
            _LOG.info(
                "Only %d rate samples (need %d); keeping default baseline",
                len(rates), self.config.baseline_min_samples,
            )
            baseline = self._default()
            baseline.sample_size = len(rates)
        else:
            values = np.asarray(rates, dtype=float)
            baseline = PopulationBaseline(
                mean_rate=float(values.mean()),
                std_rate=float(values.std()),
                sample_size=len(rates),
                window_minutes=self.config.window_minutes,
                computed_at=now,
            )
        self.baseline_store.put(baseline)
        _LOG.info(
            "Baseline refreshed: mean %.3f/min, std %.3f/min over %d samples",
            baseline.mean_rate, baseline.std_rate, baseline.sample_size,
        )
        return baseline

    def _default(self) -> PopulationBaseline:
        return PopulationBaseline(
            mean_rate=self.config.default_mean_rate,
            std_rate=self.config.default_std_rate,
            sample_size=0,
            window_minutes=self.config.window_minutes,
            computed_at=self.clock(),
            is_default=True,
        )
