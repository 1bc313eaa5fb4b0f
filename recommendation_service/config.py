"""
Immutable engine configuration snapshot.

``EngineConfig`` is built once from a raw settings dict, validated eagerly,
and passed to every component constructor. Reloading means building a new
snapshot; nothing here is mutated after construction.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping

from .errors import ConfigurationError
from .models.interactions import EventKind



@dataclass(frozen=True)
class FeatureConfig:
    """Feature extraction settings."""
    text_dimensions: int
    category_dimensions: int
    category_blend: float
    title_weight: int
    tag_weight: float
    use_bigrams: bool
    min_tokens: int
    min_token_length: int


@dataclass(frozen=True)
class ProfileConfig:
    """Profile building settings."""
    half_life_days: float
    engagement_boost: float
    event_weights: Mapping[EventKind, float]


@dataclass(frozen=True)
class RecommendationConfig:
    """Recommendation generation settings."""
    default_k: int
    max_k: int
    batch_size: int
    max_workers: int
    max_per_category: int
    cooldown_hours: float
    popularity_window_days: int
    popularity_weights: Mapping[EventKind, float]
    collaborative_neighbors: int
    collaborative_min_similarity: float


@dataclass(frozen=True)
class AnomalyConfig:
    """Anomaly scoring and access control settings."""
    threshold: float
    weights: Mapping[str, float]
    window_minutes: int
    breach_windows: int
    reblock_grace_hours: float
    baseline_days: int
    baseline_min_samples: int
    default_mean_rate: float
    default_std_rate: float
    rate_z_ceiling: float
    rapid_repeat_seconds: float
    repeat_ceiling: int
    regular_interval_std_seconds: float
    min_events_for_pattern: int


@dataclass(frozen=True)
class MetricsConfig:
    """Metrics reporting settings."""
    default_k: int
    default_window_days: int
    report_cache_ttl_seconds: int


@dataclass(frozen=True)
class EngineConfig:
    """Immutable snapshot threaded through every engine component."""
    features: FeatureConfig
    profiles: ProfileConfig
    recommendations: RecommendationConfig
    anomaly: AnomalyConfig
    metrics: MetricsConfig


ANOMALY_SIGNALS = ("rate", "category_deviation", "abuse")


DEFAULT_ENGINE_SETTINGS: Dict[str, Dict[str, Any]] = {
    "features": {
        "text_dimensions": 256,
        "category_dimensions": 32,
        "category_blend": 0.3,
        "title_weight": 2,
        "tag_weight": 1.5,
        "use_bigrams": True,
        "min_tokens": 2,
        "min_token_length": 3
    },
    "profiles": {
        "half_life_days": 14.0,
        "engagement_boost": 0.5,
        "event_weights": {
            "impression": 0.1,
            "click": 1.0,
            "completion": 2.0,
            "like": 3.0,
            "comment": 3.5
        }
    },
    "recommendations": {
        "default_k": 10,
        "max_k": 50,
        "batch_size": 100,
        "max_workers": 4,
        "max_per_category": 3,
        "cooldown_hours": 24.0,
        "popularity_window_days": 7,
        "popularity_weights": {
            "impression": 0.0,
            "click": 1.0,
            "completion": 1.5,
            "like": 2.0,
            "comment": 2.5
        },
        "collaborative_neighbors": 10,
        "collaborative_min_similarity": 0.3
    },
    "anomaly": {
        "threshold": 0.8,
        "weights": {
            "rate": 0.4,
            "category_deviation": 0.2,
            "abuse": 0.4
        },
        "window_minutes": 10,
        "breach_windows": 3,
        "reblock_grace_hours": 0.0,
        "baseline_days": 7,
        "baseline_min_samples": 20,
        "default_mean_rate": 0.5,
        "default_std_rate": 0.5,
        "rate_z_ceiling": 3.0,
        "rapid_repeat_seconds": 2.0,
        "repeat_ceiling": 5,
        "regular_interval_std_seconds": 1.0,
        "min_events_for_pattern": 5
    },
    "metrics": {
        "default_k": 10,
        "default_window_days": 7,
        "report_cache_ttl_seconds": 300
    }
}


# ---------------------------------------------------------------------------
# Snapshot construction & validation
# ---------------------------------------------------------------------------


def _event_weight_map(raw: Dict[str, Any], section: str) -> Mapping[EventKind, float]:
    unknown = set(raw) - EventKind.get_allowed_kinds()
    if unknown:
        raise ConfigurationError(f"{section}: unknown event kinds {sorted(unknown)}")
    weights: Dict[EventKind, float] = {}
    for kind in EventKind:
        if kind.value not in raw:
            raise ConfigurationError(f"{section}: missing weight for event kind '{kind.value}'")
        weights[kind] = _non_negative(raw[kind.value], f"{section}.{kind.value}")
    return MappingProxyType(weights)


def _non_negative(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if math.isnan(number) or number < 0:
        raise ConfigurationError(f"{name} must be non-negative, got {value!r}")
    return number


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return value


def build_engine_config(raw: Dict[str, Any]) -> EngineConfig:
    """Validate a raw configuration dict and freeze it into an EngineConfig."""
    try:
        feat = raw["features"]
        prof = raw["profiles"]
        rec = raw["recommendations"]
        anom = raw["anomaly"]
        met = raw["metrics"]
    except KeyError as exc:
        raise ConfigurationError(f"Missing configuration section: {exc}") from exc

    try:
        features = FeatureConfig(
            text_dimensions=_positive_int(feat["text_dimensions"], "features.text_dimensions"),
            category_dimensions=_positive_int(feat["category_dimensions"], "features.category_dimensions"),
            category_blend=_non_negative(feat["category_blend"], "features.category_blend"),
            title_weight=_positive_int(feat["title_weight"], "features.title_weight"),
            tag_weight=_non_negative(feat["tag_weight"], "features.tag_weight"),
            use_bigrams=bool(feat["use_bigrams"]),
            min_tokens=int(_non_negative(feat["min_tokens"], "features.min_tokens")),
            min_token_length=_positive_int(feat["min_token_length"], "features.min_token_length"),
        )
        if features.category_blend > 1:
            raise ConfigurationError("features.category_blend must be within [0, 1]")

        half_life = _non_negative(prof["half_life_days"], "profiles.half_life_days")
        if half_life == 0:
            raise ConfigurationError("profiles.half_life_days must be greater than zero")
        profiles = ProfileConfig(
            half_life_days=half_life,
            engagement_boost=_non_negative(prof["engagement_boost"], "profiles.engagement_boost"),
            event_weights=_event_weight_map(prof["event_weights"], "profiles.event_weights"),
        )

        recommendations = RecommendationConfig(
            default_k=_positive_int(rec["default_k"], "recommendations.default_k"),
            max_k=_positive_int(rec["max_k"], "recommendations.max_k"),
            batch_size=_positive_int(rec["batch_size"], "recommendations.batch_size"),
            max_workers=_positive_int(rec["max_workers"], "recommendations.max_workers"),
            max_per_category=_positive_int(rec["max_per_category"], "recommendations.max_per_category"),
            cooldown_hours=_non_negative(rec["cooldown_hours"], "recommendations.cooldown_hours"),
            popularity_window_days=_positive_int(rec["popularity_window_days"], "recommendations.popularity_window_days"),
            popularity_weights=_event_weight_map(rec["popularity_weights"], "recommendations.popularity_weights"),
            collaborative_neighbors=_positive_int(
                rec["collaborative_neighbors"], "recommendations.collaborative_neighbors"
            ),
            collaborative_min_similarity=_non_negative(
                rec["collaborative_min_similarity"], "recommendations.collaborative_min_similarity"
            ),
        )
        if recommendations.default_k > recommendations.max_k:
            raise ConfigurationError("recommendations.default_k must not exceed recommendations.max_k")
        if recommendations.collaborative_min_similarity > 1:
            raise ConfigurationError("recommendations.collaborative_min_similarity must be within [0, 1]")

        threshold = _non_negative(anom["threshold"], "anomaly.threshold")
        if not 0 < threshold <= 1:
            raise ConfigurationError(f"anomaly.threshold must be within (0, 1], got {threshold}")
        raw_weights = anom["weights"]
        unknown = set(raw_weights) - set(ANOMALY_SIGNALS)
        if unknown:
            raise ConfigurationError(f"anomaly.weights: unknown signals {sorted(unknown)}")
        signal_weights = {
            name: _non_negative(raw_weights.get(name, 0.0), f"anomaly.weights.{name}")
            for name in ANOMALY_SIGNALS
        }
        if sum(signal_weights.values()) <= 0:
            raise ConfigurationError("anomaly.weights must have a positive sum")
        rate_ceiling = _non_negative(anom["rate_z_ceiling"], "anomaly.rate_z_ceiling")
        if rate_ceiling == 0:
            raise ConfigurationError("anomaly.rate_z_ceiling must be greater than zero")
        anomaly = AnomalyConfig(
            threshold=threshold,
            weights=MappingProxyType(signal_weights),
            window_minutes=_positive_int(anom["window_minutes"], "anomaly.window_minutes"),
            breach_windows=_positive_int(anom["breach_windows"], "anomaly.breach_windows"),
            reblock_grace_hours=_non_negative(anom["reblock_grace_hours"], "anomaly.reblock_grace_hours"),
            baseline_days=_positive_int(anom["baseline_days"], "anomaly.baseline_days"),
            baseline_min_samples=_positive_int(anom["baseline_min_samples"], "anomaly.baseline_min_samples"),
            default_mean_rate=_non_negative(anom["default_mean_rate"], "anomaly.default_mean_rate"),
            default_std_rate=_non_negative(anom["default_std_rate"], "anomaly.default_std_rate"),
            rate_z_ceiling=rate_ceiling,
            rapid_repeat_seconds=_non_negative(anom["rapid_repeat_seconds"], "anomaly.rapid_repeat_seconds"),
            repeat_ceiling=_positive_int(anom["repeat_ceiling"], "anomaly.repeat_ceiling"),
            regular_interval_std_seconds=_non_negative(
                anom["regular_interval_std_seconds"], "anomaly.regular_interval_std_seconds"
            ),
            min_events_for_pattern=_positive_int(anom["min_events_for_pattern"], "anomaly.min_events_for_pattern"),
        )

        metrics = MetricsConfig(
            default_k=_positive_int(met["default_k"], "metrics.default_k"),
            default_window_days=_positive_int(met["default_window_days"], "metrics.default_window_days"),
            report_cache_ttl_seconds=int(_non_negative(met["report_cache_ttl_seconds"], "metrics.report_cache_ttl_seconds")),
        )
    except KeyError as exc:
        raise ConfigurationError(f"Missing configuration key: {exc}") from exc

    return EngineConfig(
        features=features,
        profiles=profiles,
        recommendations=recommendations,
        anomaly=anomaly,
        metrics=metrics,
    )


def default_engine_config(**overrides: Dict[str, Any]) -> EngineConfig:
    """Build a snapshot from the built-in defaults, optionally patching sections.

    Example: ``default_engine_config(anomaly={"threshold": 0.5})``
    """
    raw = copy.deepcopy(DEFAULT_ENGINE_SETTINGS)
    for section, values in overrides.items():
        raw.setdefault(section, {}).update(values)
    return build_engine_config(raw)
