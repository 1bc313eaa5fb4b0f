"""
Tests for the automatic access-state machine.
"""

from datetime import timedelta

import pytest

from recommendation_service import (
    InvalidTransitionError,
    UnauthorizedActorError,
    default_engine_config,
)
from recommendation_service.anomaly import SYSTEM_ACTOR
from recommendation_service.models import AccessState, AnomalyScore, EventKind, InteractionEvent


def _score(value, at, user_id="u1"):
    return AnomalyScore(user_id=user_id, score=value, evaluated_at=at)


def _apply(engine, clock, *values, user_id="u1"):
    record = None
    for value in values:
        clock.advance(minutes=10)
        record = engine.access.apply_score(_score(value, clock.now, user_id))
    return record


def _block(engine, clock, user_id="u1"):
    record = _apply(engine, clock, 0.85, 0.85, 0.85, user_id=user_id)
    assert record.state is AccessState.AUTO_BLOCKED
    return record


class TestAutomaticBlocking:

    def test_unknown_user_is_active(self, engine):
        record = engine.access.get_access("nobody")

        assert record.state is AccessState.ACTIVE
        assert not engine.access.is_blocked("nobody")

    def test_low_score_stays_active(self, engine, clock):
        record = _apply(engine, clock, 0.2)

        assert record.state is AccessState.ACTIVE
        assert record.consecutive_breaches == 0
        assert record.last_score.score == 0.2
        assert record.history == []

    def test_three_consecutive_breaches_block(self, engine, clock):
        after_two = _apply(engine, clock, 0.85, 0.85)
        assert after_two.state is AccessState.ACTIVE
        assert after_two.consecutive_breaches == 2

        record = _apply(engine, clock, 0.85)

        assert record.state is AccessState.AUTO_BLOCKED
        assert record.reason
        assert record.blocked_score == 0.85
        assert record.blocked_at == clock.now
        assert engine.access.is_blocked("u1")
        transition = record.history[-1]
        assert transition.from_state is AccessState.ACTIVE
        assert transition.to_state is AccessState.AUTO_BLOCKED
        assert transition.actor == SYSTEM_ACTOR

    def test_score_at_threshold_counts_as_breach(self, engine, clock):
        record = _apply(engine, clock, 0.8, 0.8, 0.8)

        assert record.state is AccessState.AUTO_BLOCKED

    def test_clean_window_resets_the_breach_count(self, engine, clock):
        record = _apply(engine, clock, 0.85, 0.85, 0.3, 0.85, 0.85)

        assert record.state is AccessState.ACTIVE
        assert record.consecutive_breaches == 2

    def test_each_score_carries_the_breach_count(self, engine, clock):
        counts = []
        for value in (0.85, 0.85, 0.3, 0.9):
            clock.advance(minutes=10)
            score = _score(value, clock.now)
            engine.access.apply_score(score)
            counts.append(score.consecutive_breaches)

        assert counts == [1, 2, 0, 1]
        assert engine.stores.access.get("u1").last_score.consecutive_breaches == 1

    def test_state_is_persisted(self, engine, clock):
        _block(engine, clock)

        stored = engine.stores.access.get("u1")
        assert stored.state is AccessState.AUTO_BLOCKED
        assert len(stored.history) == 1

    def test_blocked_user_stays_blocked_without_admin(self, engine, clock):
        _block(engine, clock)

        record = _apply(engine, clock, 0.1, 0.1)

        assert record.state is AccessState.AUTO_BLOCKED


class TestUnblock:

    def test_admin_unblock_records_actor_and_time(self, engine, clock):
        _block(engine, clock)
        clock.advance(hours=1)

        record = engine.access.unblock("u1", "admin", note="false positive")

        assert record.state is AccessState.UNBLOCKED
        assert record.unblocked_by == "admin"
        assert record.unblocked_at == clock.now
        assert record.consecutive_breaches == 0
        transition = record.history[-1]
        assert transition.actor == "admin"
        assert transition.reason == "false positive"
        assert transition.from_state is AccessState.AUTO_BLOCKED
        assert not engine.access.is_blocked("u1")

    @pytest.mark.parametrize("actor", ["", "   ", None, "u2", SYSTEM_ACTOR])
    def test_only_administrators_may_unblock(self, engine, clock, actor):
        _block(engine, clock)

        with pytest.raises(UnauthorizedActorError):
            engine.access.unblock("u1", actor)
        assert engine.access.get_access("u1").state is AccessState.AUTO_BLOCKED

    def test_unblocking_active_user_is_rejected(self, engine):
        with pytest.raises(InvalidTransitionError):
            engine.access.unblock("u1", "admin")

    def test_unblocking_twice_is_rejected(self, engine, clock):
        _block(engine, clock)
        engine.access.unblock("u1", "admin")

        with pytest.raises(InvalidTransitionError):
            engine.access.unblock("u1", "admin")

    def test_clean_evaluation_returns_to_active(self, engine, clock):
        _block(engine, clock)
        engine.access.unblock("u1", "admin")

        record = _apply(engine, clock, 0.1)

        assert record.state is AccessState.ACTIVE
        assert [t.to_state for t in record.history] == [
            AccessState.AUTO_BLOCKED, AccessState.UNBLOCKED, AccessState.ACTIVE,
        ]

    def test_recurring_breaches_reblock_without_grace(self, engine, clock):
        _block(engine, clock)
        engine.access.unblock("u1", "admin")

        record = _apply(engine, clock, 0.9, 0.9, 0.9)

        assert record.state is AccessState.AUTO_BLOCKED
        assert record.history[-1].from_state is AccessState.UNBLOCKED


class TestGracePeriod:

    @pytest.fixture
    def engine_config(self):
        return default_engine_config(anomaly={"reblock_grace_hours": 2.0})

    def test_no_reblock_within_grace(self, engine, clock):
        _block(engine, clock)
        engine.access.unblock("u1", "admin")

        record = _apply(engine, clock, 0.9, 0.9, 0.9, 0.9)

        assert record.state is AccessState.UNBLOCKED
        assert record.consecutive_breaches == 4

    def test_reblock_after_grace(self, engine, clock):
        _block(engine, clock)
        engine.access.unblock("u1", "admin")
        clock.advance(hours=2)

        record = _apply(engine, clock, 0.9, 0.9, 0.9)

        assert record.state is AccessState.AUTO_BLOCKED


class TestInlineEvaluation:

    @pytest.fixture
    def engine_config(self):
        return default_engine_config(anomaly={"threshold": 0.6})

    def test_burst_of_activity_blocks_after_three_windows(self, engine, clock):
        log = engine.stores.interactions
        log.extend(
            InteractionEvent(
                user_id="bot", content_id="a", kind=EventKind.LIKE,
                timestamp=clock.now - timedelta(seconds=120 - i),
            )
            for i in range(100)
        )

        states = []
        for _ in range(3):
            states.append(engine.access.evaluate("bot").state)

        assert states == [AccessState.ACTIVE, AccessState.ACTIVE, AccessState.AUTO_BLOCKED]
        record = engine.access.get_access("bot")
        assert record.last_score.window_event_count == 100
        assert "actions/min" in record.reason

    def test_ingest_evaluates_acting_user(self, engine, clock):
        event = InteractionEvent(user_id="u1", content_id="a", kind=EventKind.CLICK, timestamp=clock.now)

        stored, record = engine.ingest(event)

        assert stored.event_id == event.event_id
        assert record.state is AccessState.ACTIVE
        assert record.last_score is not None
        assert engine.stores.interactions.events_for("u1")[0].event_id == event.event_id
