"""
Factory for creating the catalog module.
"""
from recommendation_service import Engine

from .routes import create_catalog_routes


def create_catalog_module(engine: Engine) -> dict:
    """
    Create the catalog module with all its components.

    Args:
        engine: Wired engine instance

    Returns:
        Dictionary containing:
            - service: CatalogService instance
            - blueprint: Flask blueprint for routes
    """
    service = engine.catalog
    blueprint = create_catalog_routes(service)

    return {
        "service": service,
        "blueprint": blueprint
    }
