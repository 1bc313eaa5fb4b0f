"""
Basic import tests to verify the core functionality.
"""


def test_engine_imports():
    """Test that the engine entry points can be imported."""
    from recommendation_service import (
        Engine,
        EngineConfig,
        EngineError,
        build_engine,
        default_engine_config,
        setup_logging,
    )

    assert callable(build_engine)
    assert callable(setup_logging)
    assert issubclass(EngineError, Exception)
    assert isinstance(default_engine_config(), EngineConfig)
    assert Engine is not None


def test_component_imports():
    """Test that every component package exposes its services."""
    from recommendation_service.features import FeatureExtractor
    from recommendation_service.profiles import ProfileBuilder, ProfileUpdater
    from recommendation_service.recommendations import BatchRecommendationRunner, RecommendationService
    from recommendation_service.anomaly import AccessController, AnomalyScorer
    from recommendation_service.metrics import MetricsEngine, MetricsService

    for cls in (
        FeatureExtractor, ProfileBuilder, ProfileUpdater, BatchRecommendationRunner,
        RecommendationService, AccessController, AnomalyScorer, MetricsEngine, MetricsService,
    ):
        assert isinstance(cls, type)


def test_app_factories_import():
    """Test that the web module factories can be imported."""
    from app.access_control.factory import create_access_control_module
    from app.catalog.factory import create_catalog_module
    from app.event_tracking.factory import create_event_tracking_module
    from app.metrics_report.factory import create_metrics_report_module
    from app.recommendations.factory import create_recommendations_module

    assert callable(create_access_control_module)
    assert callable(create_catalog_module)
    assert callable(create_event_tracking_module)
    assert callable(create_metrics_report_module)
    assert callable(create_recommendations_module)
