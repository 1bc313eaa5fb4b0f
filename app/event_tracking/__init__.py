"""
Event Tracking Subsystem

Interaction collector: appends events to the log and evaluates users inline.
"""

from .event_tracker import EventTracker
from .models import EventPayload

__all__ = ['EventTracker', 'EventPayload']
