"""
Factory for wiring the engine components around one configuration snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Sequence, Tuple

from .anomaly import AccessController, AnomalyScorer, BaselineService
from .catalog import CatalogService
from .config import EngineConfig
from .features import FeatureExtractor
from .metrics import MetricsEngine, MetricsService
from .models import AccessRecord, InteractionEvent, utc_now
from .profiles import ProfileBuilder, ProfileUpdater
from .recommendations import BatchRecommendationRunner, RecommendationEngine, RecommendationService
from .storage import (
    AccessStore,
    BaselineStore,
    ContentStore,
    InteractionLog,
    JobStore,
    ProfileStore,
    RecommendationStore,
    ReportStore,
    VectorStore,
)

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class EngineStores:
    interactions: InteractionLog
    content: ContentStore
    vectors: VectorStore
    profiles: ProfileStore
    access: AccessStore
    baseline: BaselineStore
    recommendations: RecommendationStore
    jobs: JobStore
    reports: ReportStore

    @classmethod
    def under(cls, data_dir: Path) -> "EngineStores":
        data_dir = Path(data_dir)
        return cls(
            interactions=InteractionLog(data_dir / "interactions"),
            content=ContentStore(data_dir / "content"),
            vectors=VectorStore(data_dir / "vectors"),
            profiles=ProfileStore(data_dir / "profiles"),
            access=AccessStore(data_dir / "access"),
            baseline=BaselineStore(data_dir / "baseline"),
            recommendations=RecommendationStore(data_dir / "recommendations"),
            jobs=JobStore(data_dir / "jobs"),
            reports=ReportStore(data_dir / "reports"),
        )


@dataclass(slots=True)
class Engine:
    """All engine services built from a single configuration snapshot."""

    config: EngineConfig
    stores: EngineStores
    extractor: FeatureExtractor
    catalog: CatalogService
    profile_builder: ProfileBuilder
    profiles: ProfileUpdater
    recommendation_engine: RecommendationEngine
    recommendations: RecommendationService
    batch: BatchRecommendationRunner
    scorer: AnomalyScorer
    baseline: BaselineService
    access: AccessController
    metrics_engine: MetricsEngine
    metrics: MetricsService

    def ingest(
        self,
        event: InteractionEvent,
        abuse_signals: Iterable[float] = (),
    ) -> Tuple[InteractionEvent, AccessRecord]:
        """Append an event to the log and evaluate the user inline."""
        self.stores.interactions.append(event)
        record = self.access.evaluate(event.user_id, abuse_signals=abuse_signals)
        return event, record

    def shutdown(self) -> None:
        self.batch.shutdown()


def build_engine(
    config: EngineConfig,
    data_dir: Path,
    admin_user_ids: Sequence[str] = (),
    clock: Callable[[], datetime] = utc_now,
) -> Engine:
    """Create every store and service under ``data_dir``."""
    stores = EngineStores.under(data_dir)

    extractor = FeatureExtractor(config.features)
    catalog = CatalogService(stores.content, stores.vectors, extractor)

    profile_builder = ProfileBuilder(config.profiles, extractor.scheme_version, extractor.dimension)
    profiles = ProfileUpdater(profile_builder, stores.interactions, stores.profiles, catalog)

    recommendation_engine = RecommendationEngine(config.recommendations, extractor.scheme_version, clock=clock)
    recommendations = RecommendationService(
        config.recommendations,
        recommendation_engine,
        catalog,
        stores.profiles,
        profiles,
        stores.interactions,
        stores.recommendations,
        clock=clock,
    )
    batch = BatchRecommendationRunner(
        config.recommendations, recommendations, stores.jobs, stores.interactions, clock=clock
    )

    scorer = AnomalyScorer(config.anomaly)
    baseline = BaselineService(config.anomaly, stores.interactions, stores.baseline, clock=clock)
    access = AccessController(
        config.anomaly,
        scorer,
        baseline,
        stores.interactions,
        stores.profiles,
        stores.access,
        catalog,
        admin_user_ids=admin_user_ids,
        clock=clock,
    )

    metrics_engine = MetricsEngine(
        stores.interactions, stores.vectors, catalog, extractor.scheme_version, clock=clock
    )
    metrics = MetricsService(config.metrics, metrics_engine, stores.reports, clock=clock)

    _LOG.info("Engine ready (scheme %s, data dir %s)", extractor.scheme_version, data_dir)
    return Engine(
        config=config,
        stores=stores,
        extractor=extractor,
        catalog=catalog,
        profile_builder=profile_builder,
        profiles=profiles,
        recommendation_engine=recommendation_engine,
        recommendations=recommendations,
        batch=batch,
        scorer=scorer,
        baseline=baseline,
        access=access,
        metrics_engine=metrics_engine,
        metrics=metrics,
    )
