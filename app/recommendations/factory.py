"""
Factory for creating the recommendations module.
"""
from recommendation_service import Engine

from .routes import create_recommendation_routes


def create_recommendations_module(engine: Engine) -> dict:
    """
    Create the recommendations module with all its components.

    Args:
        engine: Wired engine instance

    Returns:
        Dictionary containing:
            - service: RecommendationService instance
            - batch_runner: BatchRecommendationRunner instance
            - blueprint: Flask blueprint for routes
    """
    blueprint = create_recommendation_routes(engine.recommendations, engine.batch)

    return {
        "service": engine.recommendations,
        "batch_runner": engine.batch,
        "blueprint": blueprint
    }
