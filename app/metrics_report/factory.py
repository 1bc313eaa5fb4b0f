"""
Factory for creating the metrics report module.
"""
from recommendation_service import Engine

from .routes import create_metrics_routes


def create_metrics_report_module(engine: Engine) -> dict:
    """
    Create the metrics report module.

    Args:
        engine: Wired engine instance

    Returns:
        Dictionary containing the MetricsService and blueprint
    """
    blueprint = create_metrics_routes(engine.metrics)

    return {
        "service": engine.metrics,
        "blueprint": blueprint
    }
