"""
Behavioral profile building.
"""

from .builder import ProfileBuilder, ProfileUpdater

__all__ = ["ProfileBuilder", "ProfileUpdater"]
