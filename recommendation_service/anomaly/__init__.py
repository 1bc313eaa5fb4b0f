"""
Anomaly scoring and automatic access control.
"""

from .scorer import AnomalyScorer, user_actions
from .baseline import BaselineService
from .access import AccessController, SYSTEM_ACTOR

__all__ = [
    "AccessController",
    "AnomalyScorer",
    "BaselineService",
    "SYSTEM_ACTOR",
    "user_actions",
]
