"""
Factory for creating the access control module.
"""
from recommendation_service import Engine

from .routes import create_access_routes


def create_access_control_module(engine: Engine) -> dict:
    """
    Create the access control module.

    Args:
        engine: Wired engine instance

    Returns:
        Dictionary containing the AccessController service and blueprint
    """
    blueprint = create_access_routes(engine.access)

    return {
        "service": engine.access,
        "blueprint": blueprint
    }
