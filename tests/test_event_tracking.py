"""
Tests for the interaction collector.
"""

from datetime import datetime, timezone

import pytest

from app.event_tracking import EventPayload, EventTracker
from recommendation_service.models import AccessState, EventKind, RecommendationSource


class TestEventKind:
    """Test EventKind enum functionality."""

    def test_valid_kinds(self):
        assert EventKind.is_valid("impression")
        assert EventKind.is_valid("click")
        assert EventKind.is_valid("comment")
        assert not EventKind.is_valid("mark_read")
        assert not EventKind.is_valid("")

    def test_allowed_kinds(self):
        assert EventKind.get_allowed_kinds() == {"impression", "click", "completion", "like", "comment"}

    def test_only_impressions_are_not_relevant(self):
        assert not EventKind.IMPRESSION.is_positive
        assert all(kind.is_positive for kind in EventKind if kind is not EventKind.IMPRESSION)
        assert EventKind.LIKE.relevance_grade > EventKind.CLICK.relevance_grade


class TestEventPayload:

    def test_from_dict_accepts_kind_alias(self):
        payload = EventPayload.from_dict({"kind": " click ", "content_id": "a"})

        assert payload.type == "click"
        assert payload.validate() is None

    @pytest.mark.parametrize("data,message", [
        ({"type": "teleport", "content_id": "a"}, "invalid event type"),
        ({"type": "click"}, "content_id is required"),
        ({"type": "click", "content_id": "   "}, "content_id is required"),
        ({"type": "click", "content_id": "a", "source": "magic"}, "invalid source"),
        ({"type": "click", "content_id": "a", "ts": "yesterday"}, "invalid timestamp"),
    ])
    def test_validate_rejects_bad_payloads(self, data, message):
        error = EventPayload.from_dict(data).validate()

        assert error is not None
        assert message in error

    def test_to_event(self):
        payload = EventPayload.from_dict({
            "type": "impression",
            "content_id": " a ",
            "ts": "2025-01-01T08:00:00+08:00",
            "source": "popularity",
            "recommendation_id": "r1",
            "position": 2,
        })

        event = payload.to_event("u1")

        assert event.user_id == "u1"
        assert event.content_id == "a"
        assert event.kind is EventKind.IMPRESSION
        assert event.source is RecommendationSource.POPULARITY
        assert event.timestamp == datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert event.position == 2

    def test_to_event_rejects_out_of_range_fields(self):
        payload = EventPayload.from_dict({"type": "completion", "content_id": "a", "engagement": 1.5})

        with pytest.raises(ValueError):
            payload.to_event("u1")


class TestEventTracker:

    @pytest.fixture
    def tracker(self, engine):
        return EventTracker(engine)

    def test_process_event_payload(self, tracker, engine):
        payload = EventPayload.from_dict({"type": "click", "content_id": "a"})

        event, record = tracker.process_event_payload("u1", payload)

        assert record.state is AccessState.ACTIVE
        stored = engine.stores.interactions.events_for("u1")
        assert [e.event_id for e in stored] == [event.event_id]

    def test_invalid_payload_is_not_stored(self, tracker, engine):
        with pytest.raises(ValueError):
            tracker.process_event_payload("u1", EventPayload.from_dict({"type": "mark_read", "content_id": "a"}))

        assert engine.stores.interactions.events_for("u1") == []

    def test_get_user_events_with_limit(self, tracker):
        for content_id in ["a", "b", "c"]:
            tracker.process_event_payload("u1", EventPayload.from_dict({"type": "click", "content_id": content_id}))

        assert len(tracker.get_user_events("u1")) == 3
        assert [e.content_id for e in tracker.get_user_events("u1", limit=2)] == ["b", "c"]

    def test_get_event_stats(self, tracker):
        tracker.process_event_payload("u1", EventPayload.from_dict({"type": "click", "content_id": "a"}))
        tracker.process_event_payload("u1", EventPayload.from_dict({"type": "click", "content_id": "b"}))
        tracker.process_event_payload("u1", EventPayload.from_dict({"type": "like", "content_id": "b"}))

        stats = tracker.get_event_stats("u1")

        assert stats == {"click": 2, "like": 1}
