"""
Human-readable rendering of metrics reports for operators.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from ..models import MetricsReport, RecommendationSource

# (excellent, good, fair) lower bounds; anything below fair needs improvement.
INTERPRETATION_THRESHOLDS: Dict[str, Tuple[float, float, float]] = {
    "precision_at_k": (0.7, 0.5, 0.3),
    "recall_at_k": (0.6, 0.4, 0.2),
    "f1": (0.6, 0.4, 0.2),
    "ndcg_at_k": (0.8, 0.6, 0.4),
    "ctr": (0.1, 0.05, 0.02),
    "avg_engagement": (0.7, 0.4, 0.2),
    "diversity": (0.7, 0.5, 0.3),
    "coverage": (0.5, 0.3, 0.1),
}

METRIC_LABELS = {
    "precision_at_k": "Precision@K",
    "recall_at_k": "Recall@K",
    "f1": "F1 Score",
    "ndcg_at_k": "NDCG@K",
    "ctr": "Click-Through Rate",
    "avg_engagement": "Avg Engagement",
    "diversity": "Diversity",
    "coverage": "Catalog Coverage",
}


def interpret(metric: str, value: float, insufficient: bool = False) -> str:
    if insufficient:
        return "Insufficient data"
    excellent, good, fair = INTERPRETATION_THRESHOLDS[metric]
    if value >= excellent:
        return "Excellent"
    if value >= good:
        return "Good"
    if value >= fair:
        return "Fair"
    return "Needs Improvement"


def format_report(report: MetricsReport, title: Optional[str] = None) -> str:
    """Fixed-width table of every metric with its interpretation."""
    heading = title or f"Recommendation metrics (K={report.k})"
    lines = [
        heading,
        f"Window: {report.window_start.isoformat()} .. {report.window_end.isoformat()}",
        f"Source: {report.source.value if report.source else 'all'}",
        f"Users: {report.users_evaluated}  Lists: {report.lists_evaluated}  "
        f"Impressions: {report.impressions}  Catalog: {report.catalog_size}",
        "",
        f"{'Metric':<20} {'Value':>10}  Interpretation",
        "-" * 50,
    ]
    for metric, label in METRIC_LABELS.items():
        value = getattr(report, metric)
        verdict = interpret(metric, value, metric in report.insufficient_data)
        lines.append(f"{label:<20} {value:>10.4f}  {verdict}")
    return "\n".join(lines)


def format_source_comparison(reports: Mapping[RecommendationSource, MetricsReport]) -> str:
    """Side-by-side table of key metrics per recommendation source."""
    columns = ("precision_at_k", "recall_at_k", "ndcg_at_k", "ctr", "coverage")
    header = f"{'Source':<16} {'Impr.':>7} " + " ".join(f"{METRIC_LABELS[c][:11]:>11}" for c in columns)
    lines = [header, "-" * len(header)]
    for source, report in reports.items():
        if report.impressions == 0:
            lines.append(f"{source.value:<16} {0:>7} {'no data':>11}")
            continue
        values = " ".join(f"{getattr(report, c):>11.4f}" for c in columns)
        lines.append(f"{source.value:<16} {report.impressions:>7} {values}")
    return "\n".join(lines)


def export_reports(path: Path, reports: Mapping[str, MetricsReport]) -> Path:
    """Write reports as JSON, keyed by segment name."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {name: report.model_dump(mode="json") for name, report in reports.items()}
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return path
