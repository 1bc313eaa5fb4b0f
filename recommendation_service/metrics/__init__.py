"""
Recommendation quality metrics.
"""

from .engine import (
    ALL_METRICS,
    DeliveredList,
    MetricsEngine,
    dcg,
    intra_list_diversity,
    ndcg,
)
from .service import MetricsService
from .report import (
    INTERPRETATION_THRESHOLDS,
    export_reports,
    format_report,
    format_source_comparison,
    interpret,
)

__all__ = [
    "ALL_METRICS",
    "DeliveredList",
    "INTERPRETATION_THRESHOLDS",
    "MetricsEngine",
    "MetricsService",
    "dcg",
    "export_reports",
    "format_report",
    "format_source_comparison",
    "interpret",
    "intra_list_diversity",
    "ndcg",
]
