"""
User profile construction.

A profile is the exponentially decayed, kind-weighted sum of the content
vectors a user interacted with. Decay is measured against the profile's own
watermark (its newest folded event) rather than the wall clock, so the stored
sum can be carried forward exactly: decaying a prior sum to a new watermark
and adding the unfolded events gives the same result as a full rebuild, even
when some of those events carry timestamps older than the prior watermark.
Which events are unfolded is decided by ingestion position, not timestamp.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np

from ..catalog import CatalogService
from ..config import ProfileConfig
from ..errors import DimensionMismatchError, SchemeMismatchError
from ..models import ContentVector, InteractionEvent, UserProfile, utc_now
from ..storage import InteractionLog, ProfileStore

_LOG = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400.0


class ProfileBuilder:
    """Folds interaction events into decayed, weighted preference vectors."""

    def __init__(self, config: ProfileConfig, scheme_version: str, dimension: int):
        self.config = config
        self.scheme_version = scheme_version
        self.dimension = dimension
        self._half_life_seconds = config.half_life_days * _SECONDS_PER_DAY

    def is_compatible(self, profile: Optional[UserProfile]) -> bool:
        return (
            profile is not None
            and profile.scheme_version == self.scheme_version
            and profile.dimension == self.dimension
            and len(profile.weighted_sum) == self.dimension
            and profile.log_position is not None
        )

    def decay(self, newer: datetime, older: datetime) -> float:
        age = max((newer - older).total_seconds(), 0.0)
        return 0.5 ** (age / self._half_life_seconds)

    def event_weight(self, event: InteractionEvent) -> float:
        """Kind weight scaled by collaborator-supplied engagement, before decay."""
        base = self.config.event_weights[event.kind]
        engagement = event.engagement or 0.0
        return base * (1.0 + self.config.engagement_boost * engagement)

    def build_profile(
        self,
        user_id: str,
        events: Iterable[InteractionEvent],
        vectors: Mapping[str, ContentVector],
        content_categories: Optional[Mapping[str, Optional[str]]] = None,
        prior: Optional[UserProfile] = None,
        log_position: int = 0,
    ) -> UserProfile:
        """Build or incrementally update a user's profile.

        Args:
            user_id: Profile owner
            events: Interaction events to fold; with a compatible ``prior``
                these must be the events not yet folded into it
            vectors: Current-scheme content vectors keyed by content id
            content_categories: Primary category per content id
            prior: Previously stored profile; ignored (full rebuild) when its
                scheme version or dimensionality does not match
            log_position: Ingestion position the result accounts for

        Raises:
            SchemeMismatchError: a supplied vector was produced by another scheme
        """
        content_categories = content_categories or {}
        if prior is not None and not self.is_compatible(prior):
            _LOG.info(
                "Profile %s is incompatible (scheme %s, dim %d); rebuilding from scratch",
                user_id, prior.scheme_version, prior.dimension,
            )
            prior = None

        pending = [e for e in events if e.user_id == user_id]
        pending.sort(key=lambda e: (e.timestamp, e.event_id))

        watermark = prior.watermark if prior is not None else None
        if pending:
            newest = pending[-1].timestamp
            watermark = newest if watermark is None or newest > watermark else watermark

        weighted_sum = np.zeros(self.dimension)
        total_weight = 0.0
        category_weights: Dict[str, float] = {}
        event_count = 0
        if prior is not None:
            carry = self.decay(watermark, prior.watermark) if prior.watermark and watermark else 1.0
            weighted_sum = np.asarray(prior.weighted_sum, dtype=float) * carry
            total_weight = prior.total_weight * carry
            category_weights = {name: w * carry for name, w in prior.category_weights.items()}
            event_count = prior.event_count

        skipped = 0
        for event in pending:
            vector = vectors.get(event.content_id)
            if vector is None or vector.is_zero:
                skipped += 1
                continue
            self._check_vector(vector)
            weight = self.event_weight(event) * self.decay(watermark, event.timestamp)
            if weight <= 0:
                continue
            weighted_sum += weight * vector.as_array()
            total_weight += weight
            category = content_categories.get(event.content_id)
            if category:
                category_weights[category] = category_weights.get(category, 0.0) + weight
            event_count += 1

        if skipped:
            _LOG.debug("Profile %s: %d events had no comparable vector", user_id, skipped)

        norm = float(np.linalg.norm(weighted_sum))
        unit = weighted_sum / norm if norm > 0 else np.zeros(self.dimension)
        return UserProfile(
            user_id=user_id,
            vector=[float(v) for v in unit],
            weighted_sum=[float(v) for v in weighted_sum],
            total_weight=total_weight,
            category_weights=category_weights,
            scheme_version=self.scheme_version,
            dimension=self.dimension,
            watermark=watermark,
            event_count=event_count,
            log_position=log_position,
            updated_at=utc_now(),
        )

    def _check_vector(self, vector: ContentVector) -> None:
        if vector.scheme_version != self.scheme_version:
            raise SchemeMismatchError(vector.content_id, vector.scheme_version, self.scheme_version)
        if len(vector.values) != self.dimension:
            raise DimensionMismatchError(
                f"{vector.content_id}: vector has {len(vector.values)} values, expected {self.dimension}"
            )


class ProfileUpdater:
    """Offline job that keeps stored profiles in step with the interaction log."""

    def __init__(
        self,
        builder: ProfileBuilder,
        interaction_log: InteractionLog,
        profile_store: ProfileStore,
        catalog: CatalogService,
    ):
        self.builder = builder
        self.interaction_log = interaction_log
        self.profile_store = profile_store
        self.catalog = catalog

    def update_user(self, user_id: str, full: bool = False) -> UserProfile:
        """Fold a user's new events into their profile and persist it."""
        prior = None if full else self.profile_store.get(user_id)
        if not self.builder.is_compatible(prior):
            prior = None
        position = prior.log_position if prior is not None else 0
        events, position = self.interaction_log.read_since(user_id, position)
        if prior is not None and not events:
            return prior

        content_ids = {event.content_id for event in events}
        vectors = self.catalog.fresh_vectors(content_ids)
        items = self.catalog.items(content_ids)
        categories = {cid: item.primary_category for cid, item in items.items()}

        profile = self.builder.build_profile(
            user_id, events, vectors, content_categories=categories, prior=prior, log_position=position
        )
        if not self.profile_store.put_if_newer(profile):
            return self.profile_store.get(user_id) or profile
        return profile

    def update_all_profiles(self, cancel_event: Optional[threading.Event] = None) -> int:
        """Update every user with events appended since their profile was built.

        Safe to cancel between users; profiles already written stay valid.
        Returns the number of profiles updated.
        """
        positions: Dict[str, Optional[int]] = {}
        for profile in self.profile_store.all():
            positions[profile.user_id] = profile.log_position if self.builder.is_compatible(profile) else None

        dirty: List[str] = self.interaction_log.dirty_users(positions)
        _LOG.info("Updating %d dirty profiles", len(dirty))
        updated = 0
        for user_id in dirty:
            if cancel_event is not None and cancel_event.is_set():
                _LOG.info("Profile update cancelled after %d users", updated)
                break
            try:
                self.update_user(user_id)
            except Exception:
                _LOG.exception("Profile update failed for %s", user_id)
                continue
            updated += 1
        return updated
