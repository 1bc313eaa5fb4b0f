"""
Metrics report data models.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .common import ensure_utc, utc_now
from .interactions import RecommendationSource


class TimeWindow(BaseModel):
    """Half-open time interval [start, end)."""
    start: datetime = Field(description="Inclusive start (UTC)")
    end: datetime = Field(description="Exclusive end (UTC)")

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "TimeWindow":
        if self.end < self.start:
            raise ValueError("window end must not precede its start")
        return self

    @classmethod
    def last_days(cls, days: float, now: Optional[datetime] = None) -> "TimeWindow":
        end = ensure_utc(now) if now else utc_now()
        return cls(start=end - timedelta(days=days), end=end)

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


class MetricsReport(BaseModel):
    """Derived, disposable snapshot of recommendation quality."""
    k: int = Field(description="Cut-off rank")
    window_start: datetime = Field(description="Window start (UTC)")
    window_end: datetime = Field(description="Window end (UTC)")
    source: Optional[RecommendationSource] = Field(default=None, description="Source segment, or None for all")
    users_evaluated: int = Field(default=0, description="Users with at least one impression")
    lists_evaluated: int = Field(default=0, description="Delivered lists with at least one impression")
    impressions: int = Field(default=0, description="Impressions in the window")
    precision_at_k: float = Field(default=0.0, description="Mean Precision@K")
    recall_at_k: float = Field(default=0.0, description="Mean Recall@K over users with relevant items")
    f1: float = Field(default=0.0, description="Harmonic mean of Precision@K and Recall@K")
    ndcg_at_k: float = Field(default=0.0, description="Mean NDCG@K")
    ctr: float = Field(default=0.0, description="Attributed clicks per impression")
    avg_engagement: float = Field(default=0.0, description="Mean engagement per impression")
    diversity: float = Field(default=0.0, description="Mean intra-list dissimilarity")
    coverage: float = Field(default=0.0, description="Fraction of the catalog shown at least once")
    catalog_size: int = Field(default=0, description="Catalog size used for coverage")
    insufficient_data: List[str] = Field(
        default_factory=list, description="Metrics whose denominator was zero and report a 0.0 sentinel"
    )
    generated_at: datetime = Field(default_factory=utc_now, description="Computation time (UTC)")
