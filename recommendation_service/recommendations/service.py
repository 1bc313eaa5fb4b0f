"""
service.py - Per-user recommendation service
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..catalog import CatalogService
from ..config import RecommendationConfig
from ..errors import ContentNotFoundError
from ..models import EventKind, RecommendationList, TimeWindow, UserProfile, utc_now
from ..profiles import ProfileUpdater
from ..storage import InteractionLog, ProfileStore, RecommendationStore
from .engine import (
    Candidate,
    CollaborativeStrategy,
    Neighbor,
    RecommendationEngine,
    SimilarContentStrategy,
    build_candidates,
    engagement_by_content,
    nearest_profiles,
    popularity_scores,
)

_LOG = logging.getLogger(__name__)


class RecommendationService:
    """Loads inputs, generates, and persists recommendation lists."""

    def __init__(
        self,
        config: RecommendationConfig,
        engine: RecommendationEngine,
        catalog: CatalogService,
        profile_store: ProfileStore,
        profile_updater: ProfileUpdater,
        interaction_log: InteractionLog,
        recommendation_store: RecommendationStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.engine = engine
        self.catalog = catalog
        self.profile_store = profile_store
        self.profile_updater = profile_updater
        self.interaction_log = interaction_log
        self.recommendation_store = recommendation_store
        self.clock = clock

    # Inputs -------------------------------------------------------------------

    def load_candidates(self) -> List[Candidate]:
        """Current-scheme candidate pool for the whole catalog."""
        vectors = self.catalog.fresh_vectors()
        items = self.catalog.items(vectors.keys())
        return build_candidates(items, vectors)

    def already_seen(self, user_id: str, now: Optional[datetime] = None) -> Set[str]:
        """Content shown to the user within the cool-down window."""
        now = now or self.clock()
        since = now - timedelta(hours=self.config.cooldown_hours)
        return {
            event.content_id
            for event in self.interaction_log.events_for(user_id, after=since)
            if event.kind is EventKind.IMPRESSION and event.timestamp <= now
        }

    def popularity(self, now: Optional[datetime] = None) -> Dict[str, float]:
        now = now or self.clock()
        window = TimeWindow(
            start=now - timedelta(days=self.config.popularity_window_days),
            end=now + timedelta(microseconds=1),
        )
        events = self.interaction_log.events_in(window)
        return popularity_scores(
            events, self.config.popularity_weights, now, self.config.popularity_window_days
        )

    def _usable_profile(self, user_id: str) -> Optional[UserProfile]:
        profile = self.profile_store.get(user_id)
        if profile is not None and not self.profile_updater.builder.is_compatible(profile):
            _LOG.info("Profile %s uses an outdated scheme; rebuilding before generation", user_id)
            profile = self.profile_updater.update_user(user_id, full=True)
        return profile

    # Entry points -------------------------------------------------------------

    def get_recommendations(
        self,
        user_id: str,
        k: Optional[int] = None,
        candidates: Optional[Sequence[Candidate]] = None,
        popularity: Optional[Dict[str, float]] = None,
        persist: bool = True,
    ) -> RecommendationList:
        """Generate a list for one user, falling back to popularity for cold starts.

        ``candidates`` and ``popularity`` may be supplied by batch callers that
        share them across users.
        """
        k = self.engine.validate_k(k)
        now = self.clock()
        profile = self._usable_profile(user_id)
        if candidates is None:
            candidates = self.load_candidates()
        if not self.engine.is_personalizable(profile) and popularity is None:
            popularity = self.popularity(now)

        result = self.engine.generate(
            profile,
            candidates,
            k=k,
            already_seen=self.already_seen(user_id, now),
            popularity=popularity,
            user_id=user_id,
        )
        if persist:
            self.recommendation_store.put(result)
        return result

    def similar_to(self, content_id: str, k: Optional[int] = None) -> RecommendationList:
        """Items most similar to the given content item."""
        vectors = self.catalog.fresh_vectors()
        anchor = vectors.get(content_id)
        if anchor is None:
            raise ContentNotFoundError(f"No comparable vector for content: {content_id}")
        items = self.catalog.items(vectors.keys())
        strategy = SimilarContentStrategy(anchor, self.engine.scheme_version)
        return self.engine.rank(strategy, build_candidates(items, vectors), k)

    def last_recommendations(self, user_id: str) -> Optional[RecommendationList]:
        """The most recently persisted list for a user."""
        return self.recommendation_store.get(user_id)

    def similar_users(self, user_id: str) -> List[Neighbor]:
        """Nearest other profiles by cosine similarity of profile vectors."""
        profile = self._usable_profile(user_id)
        if not self.engine.is_personalizable(profile):
            return []
        return nearest_profiles(
            profile,
            self.profile_store.all(),
            self.config.collaborative_neighbors,
            self.config.collaborative_min_similarity,
        )

    def collaborative_for(self, user_id: str, k: Optional[int] = None, persist: bool = True) -> RecommendationList:
        """Rank what the user's nearest neighbors engaged with.

        Content the user already engaged with is excluded along with the
        cool-down set. Users without a profile or without neighbors get the
        popularity list instead.
        """
        k = self.engine.validate_k(k)
        now = self.clock()
        neighbors = self.similar_users(user_id)
        candidates = self.load_candidates()
        if not neighbors:
            _LOG.info("No similar users for %s; falling back to popularity", user_id)
            result = self.engine.generate(
                None,
                candidates,
                k=k,
                already_seen=self.already_seen(user_id, now),
                popularity=self.popularity(now),
                user_id=user_id,
            )
        else:
            weights = self.config.popularity_weights
            engagement = {
                neighbor.user_id: engagement_by_content(self.interaction_log.events_for(neighbor.user_id), weights)
                for neighbor in neighbors
            }
            own = engagement_by_content(self.interaction_log.events_for(user_id), weights)
            excluded = self.already_seen(user_id, now) | set(own)
            strategy = CollaborativeStrategy(neighbors, engagement)
            result = self.engine.rank(strategy, candidates, k, excluded, user_id=user_id)
        if persist:
            self.recommendation_store.put(result)
        return result
