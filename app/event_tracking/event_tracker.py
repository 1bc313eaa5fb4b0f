"""
Event Tracker

Validates incoming interaction events, appends them to the interaction log
and runs the inline anomaly evaluation for the acting user.
"""

import logging
from typing import Dict, List, Optional, Tuple

from recommendation_service import Engine
from recommendation_service.models import AccessRecord, InteractionEvent

from .models import EventPayload

_LOG = logging.getLogger(__name__)


class EventTracker:
    """Interaction collector facade over the engine."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def process_event_payload(self, uid: str, payload: EventPayload) -> Tuple[InteractionEvent, AccessRecord]:
        """Process an event payload from a collaborator.

        Args:
            uid: User identifier
            payload: Event payload

        Returns:
            The stored event and the user's access record after evaluation

        Raises:
            ValueError: if the payload is invalid
        """
        if (error := payload.validate()) is not None:
            raise ValueError(error)
        event = payload.to_event(uid)
        return self.engine.ingest(event)

    def get_user_events(self, uid: str, limit: Optional[int] = None) -> List[InteractionEvent]:
        """Get the most recent events for a user.

        Args:
            uid: User identifier
            limit: Optional limit on number of events to return
        """
        events = self.engine.stores.interactions.events_for(uid)
        if limit is not None:
            events = events[-limit:]
        return events

    def get_event_stats(self, uid: str) -> Dict[str, int]:
        """Get event counts per kind for a user."""
        stats: Dict[str, int] = {}
        for event in self.get_user_events(uid):
            stats[event.kind.value] = stats.get(event.kind.value, 0) + 1
        return stats
