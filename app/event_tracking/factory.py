"""
Factory for creating event tracking module.
"""
from recommendation_service import Engine

from .routes import create_event_tracking_blueprint
from .event_tracker import EventTracker


def create_event_tracking_module(engine: Engine) -> dict:
    """Create event tracking module with service and routes.

    Args:
        engine: Wired engine the events are ingested into

    Returns:
        Dictionary containing the service and blueprint
    """
    event_tracker = EventTracker(engine)
    blueprint = create_event_tracking_blueprint(event_tracker)

    return {
        "service": event_tracker,
        "blueprint": blueprint
    }
