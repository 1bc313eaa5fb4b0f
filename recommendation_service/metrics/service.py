"""
service.py - Cached metrics reports
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from ..config import MetricsConfig
from ..errors import InvalidRequestError
from ..models import MetricsReport, RecommendationSource, TimeWindow, utc_now
from ..storage import ReportStore, report_cache_key
from .engine import MetricsEngine

_LOG = logging.getLogger(__name__)


class MetricsService:
    """Serves metrics reports, reusing cached snapshots within their TTL."""

    def __init__(
        self,
        config: MetricsConfig,
        engine: MetricsEngine,
        report_store: ReportStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.engine = engine
        self.report_store = report_store
        self.clock = clock

    def window_for_days(self, days: Optional[float] = None) -> TimeWindow:
        """Window of the last ``days`` ending at the current minute boundary."""
        days = self.config.default_window_days if days is None else days
        if days <= 0:
            raise InvalidRequestError("days must be positive")
        end = self.clock().replace(second=0, microsecond=0)
        return TimeWindow(start=end - timedelta(days=days), end=end)

    def get_report(
        self,
        k: Optional[int] = None,
        window: Optional[TimeWindow] = None,
        source: Optional[RecommendationSource] = None,
        use_cache: bool = True,
    ) -> MetricsReport:
        k = self.config.default_k if k is None else k
        if k < 1:
            raise InvalidRequestError("k must be positive")
        window = window or self.window_for_days()
        key = report_cache_key((k, window.start, window.end, source.value if source else None))

        if use_cache and (cached := self.report_store.get(key)) is not None:
            age = (self.clock() - cached.generated_at).total_seconds()
            if age < self.config.report_cache_ttl_seconds:
                _LOG.debug("Serving cached metrics report %s (age %.0fs)", key, age)
                return cached

        report = self.engine.compute(k, window, source=source)
        self.report_store.put(report)
        self.prune_expired()
        return report

    def prune_expired(self) -> int:
        """Drop cached reports past their TTL."""
        cutoff = self.clock() - timedelta(seconds=self.config.report_cache_ttl_seconds)
        removed = self.report_store.prune(cutoff)
        if removed:
            _LOG.debug("Pruned %d expired metrics reports", removed)
        return removed

    def get_reports_by_source(
        self,
        k: Optional[int] = None,
        window: Optional[TimeWindow] = None,
        use_cache: bool = True,
    ) -> Dict[RecommendationSource, MetricsReport]:
        window = window or self.window_for_days()
        return {
            source: self.get_report(k, window, source=source, use_cache=use_cache)
            for source in RecommendationSource
        }

    def clear_cache(self) -> int:
        return self.report_store.clear()
