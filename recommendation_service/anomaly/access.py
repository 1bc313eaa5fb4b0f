"""
User access-state machine driven by anomaly scores.

    ACTIVE --(breach_windows consecutive breaches, system)--> AUTO_BLOCKED
    AUTO_BLOCKED --(administrator unblock)--> UNBLOCKED
    UNBLOCKED --(clean evaluation, system)--> ACTIVE
    UNBLOCKED --(breaches recur after the grace period, system)--> AUTO_BLOCKED

Every transition is appended to the record's history and the record is
written atomically, so session collaborators can poll ``is_blocked``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from ..catalog import CatalogService
from ..config import AnomalyConfig
from ..errors import InvalidTransitionError, UnauthorizedActorError
from ..models import AccessRecord, AccessState, AccessTransition, AnomalyScore, utc_now
from ..storage import AccessStore, InteractionLog, ProfileStore
from .baseline import BaselineService
from .scorer import AnomalyScorer

_LOG = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class AccessController:
    """Evaluates users inline with ingestion and applies access transitions."""

    def __init__(
        self,
        config: AnomalyConfig,
        scorer: AnomalyScorer,
        baseline_service: BaselineService,
        interaction_log: InteractionLog,
        profile_store: ProfileStore,
        access_store: AccessStore,
        catalog: CatalogService,
        admin_user_ids: Sequence[str] = (),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.scorer = scorer
        self.baseline_service = baseline_service
        self.interaction_log = interaction_log
        self.profile_store = profile_store
        self.access_store = access_store
        self.catalog = catalog
        self.admin_user_ids = {uid.strip() for uid in admin_user_ids if uid and uid.strip()}
        self.clock = clock
        self._lock = threading.Lock()

    # Queries ------------------------------------------------------------------

    def get_access(self, user_id: str) -> AccessRecord:
        """Current access record; users never evaluated are ACTIVE."""
        return self.access_store.get(user_id) or AccessRecord(user_id=user_id, updated_at=self.clock())

    def is_blocked(self, user_id: str) -> bool:
        return self.get_access(user_id).is_blocked

    def is_admin(self, actor: Optional[str]) -> bool:
        return bool(actor) and actor.strip() in self.admin_user_ids

    # Evaluation ---------------------------------------------------------------

    def evaluate(
        self,
        user_id: str,
        abuse_signals: Iterable[float] = (),
        now: Optional[datetime] = None,
    ) -> AccessRecord:
        """Score the user's current window and apply any resulting transition.

        Single-user scope: reads only this user's events, their profile and
        the precomputed population baseline.
        """
        now = now or self.clock()
        window = self.scorer.window_ending(now)
        events = self.interaction_log.events_for(user_id, window=window)
        content_ids = {event.content_id for event in events}
        categories = {cid: item.primary_category for cid, item in self.catalog.items(content_ids).items()}
        score = self.scorer.score(
            user_id,
            events,
            profile=self.profile_store.get(user_id),
            baseline=self.baseline_service.current(),
            content_categories=categories,
            abuse_signals=abuse_signals,
            now=now,
        )
        return self.apply_score(score)

    def apply_score(self, score: AnomalyScore) -> AccessRecord:
        """Record an evaluation window and transition state if warranted."""
        with self._lock:
            record = self.get_access(score.user_id)
            breach = score.score >= self.config.threshold
            record.consecutive_breaches = record.consecutive_breaches + 1 if breach else 0
            score.consecutive_breaches = record.consecutive_breaches
            record.last_score = score
            record.updated_at = score.evaluated_at
            sustained = record.consecutive_breaches >= self.config.breach_windows

            if record.state is AccessState.ACTIVE and sustained:
                self._block(record, score)
            elif record.state is AccessState.UNBLOCKED:
                if sustained and not self._within_grace(record, score.evaluated_at):
                    self._block(record, score)
                elif not breach:
                    self._transition(
                        record, AccessState.ACTIVE, SYSTEM_ACTOR,
                        reason="Clean evaluation after unblock", score=score.score, at=score.evaluated_at,
                    )

            self.access_store.put(record)
            return record

    def unblock(
        self,
        user_id: str,
        actor: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AccessRecord:
        """Administrator-only AUTO_BLOCKED -> UNBLOCKED transition.

        Raises:
            UnauthorizedActorError: actor missing or not a configured administrator
            InvalidTransitionError: user is not currently AUTO_BLOCKED
        """
        if not actor or not actor.strip():
            raise UnauthorizedActorError("An explicit actor is required to unblock a user")
        actor = actor.strip()
        if not self.is_admin(actor):
            raise UnauthorizedActorError(f"{actor} is not an administrator")

        now = now or self.clock()
        with self._lock:
            record = self.get_access(user_id)
            if record.state is not AccessState.AUTO_BLOCKED:
                raise InvalidTransitionError(
                    f"Cannot unblock {user_id}: state is {record.state.value}, expected auto_blocked"
                )
            self._transition(
                record, AccessState.UNBLOCKED, actor,
                reason=note, score=record.last_score.score if record.last_score else None, at=now,
            )
            record.unblocked_at = now
            record.unblocked_by = actor
            record.consecutive_breaches = 0
            record.updated_at = now
            self.access_store.put(record)
            return record

    # Internals ----------------------------------------------------------------

    def _within_grace(self, record: AccessRecord, at: datetime) -> bool:
        grace = self.config.reblock_grace_hours
        if grace <= 0 or record.unblocked_at is None:
            return False
        return at < record.unblocked_at + timedelta(hours=grace)

    def _block(self, record: AccessRecord, score: AnomalyScore) -> None:
        reason = score.reason or (
            f"Anomaly score {score.score:.2f} at or above {self.config.threshold:.2f} "
            f"for {record.consecutive_breaches} consecutive windows"
        )
        self._transition(
            record, AccessState.AUTO_BLOCKED, SYSTEM_ACTOR,
            reason=reason, score=score.score, at=score.evaluated_at,
        )
        record.reason = reason
        record.blocked_score = score.score
        record.blocked_at = score.evaluated_at

    def _transition(
        self,
        record: AccessRecord,
        to_state: AccessState,
        actor: str,
        reason: Optional[str],
        score: Optional[float],
        at: datetime,
    ) -> None:
        before = record.state
        record.history.append(
            AccessTransition(from_state=before, to_state=to_state, actor=actor, reason=reason, score=score, at=at)
        )
        record.state = to_state
        log = _LOG.warning if to_state is AccessState.AUTO_BLOCKED else _LOG.info
        log(
            "Access %s: %s -> %s by %s (score=%s, reason=%s)",
            record.user_id, before.value, to_state.value, actor, score, reason,
        )
