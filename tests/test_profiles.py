"""
Tests for user profile building and incremental updates.
"""

from datetime import timedelta

import numpy as np
import pytest

from recommendation_service import SchemeMismatchError
from recommendation_service.models import ContentItem, EventKind, InteractionEvent


def _item(content_id, title, body, category):
    return ContentItem(content_id=content_id, title=title, body=body, categories=[category])


def _event(user_id, content_id, kind, ts, engagement=None):
    return InteractionEvent(user_id=user_id, content_id=content_id, kind=kind, timestamp=ts, engagement=engagement)


@pytest.fixture
def catalog(engine):
    items = [
        _item("roof-1", "Roof repair", "Fix leaking roof shingles and flashing", "roofing"),
        _item("roof-2", "Gutter cleaning", "Clear gutters before the roof leaks", "roofing"),
        _item("kitchen-1", "Kitchen design", "Choose cabinets and countertops", "kitchen"),
        _item("garden-1", "Garden soil", "Compost improves garden soil", "garden"),
    ]
    for item in items:
        engine.catalog.upsert_item(item)
    return engine.catalog


class TestProfileBuilder:
    """Pure profile construction."""

    def test_decay_halves_every_half_life(self, engine, clock):
        builder = engine.profile_builder
        half_life = timedelta(days=engine.config.profiles.half_life_days)

        assert builder.decay(clock.now, clock.now) == pytest.approx(1.0)
        assert builder.decay(clock.now, clock.now - half_life) == pytest.approx(0.5)
        assert builder.decay(clock.now, clock.now - 2 * half_life) == pytest.approx(0.25)

    def test_engagement_boosts_event_weight(self, engine, clock):
        builder = engine.profile_builder
        plain = _event("u1", "roof-1", EventKind.CLICK, clock.now)
        engaged = _event("u1", "roof-1", EventKind.CLICK, clock.now, engagement=1.0)

        assert builder.event_weight(engaged) == pytest.approx(builder.event_weight(plain) * 1.5)

    def test_profile_is_unit_vector_with_categories(self, engine, catalog, clock):
        events = [
            _event("u1", "roof-1", EventKind.LIKE, clock.now - timedelta(hours=2)),
            _event("u1", "kitchen-1", EventKind.CLICK, clock.now - timedelta(hours=1)),
        ]
        vectors = catalog.fresh_vectors()
        categories = {cid: item.primary_category for cid, item in catalog.items().items()}

        profile = engine.profile_builder.build_profile("u1", events, vectors, content_categories=categories)

        assert np.linalg.norm(profile.as_array()) == pytest.approx(1.0)
        assert profile.watermark == clock.now - timedelta(hours=1)
        assert profile.event_count == 2
        distribution = profile.category_distribution()
        assert distribution["roofing"] > distribution["kitchen"]

    def test_events_without_vectors_are_skipped(self, engine, catalog, clock):
        events = [_event("u1", "unknown", EventKind.LIKE, clock.now)]

        profile = engine.profile_builder.build_profile("u1", events, catalog.fresh_vectors())

        assert profile.is_zero
        assert profile.event_count == 0
        assert profile.watermark == clock.now

    def test_other_scheme_vector_raises(self, engine, catalog, clock):
        vectors = catalog.fresh_vectors()
        vectors["roof-1"] = vectors["roof-1"].model_copy(update={"scheme_version": "v0-legacy"})
        events = [_event("u1", "roof-1", EventKind.CLICK, clock.now)]

        with pytest.raises(SchemeMismatchError):
            engine.profile_builder.build_profile("u1", events, vectors)

    def test_incompatible_prior_triggers_full_rebuild(self, engine, catalog, clock):
        events = [_event("u1", "roof-1", EventKind.CLICK, clock.now - timedelta(hours=1))]
        vectors = catalog.fresh_vectors()
        fresh = engine.profile_builder.build_profile("u1", events, vectors)
        stale_prior = fresh.model_copy(update={"scheme_version": "v0-legacy", "event_count": 99})

        rebuilt = engine.profile_builder.build_profile("u1", events, vectors, prior=stale_prior)

        assert rebuilt.event_count == 1
        assert rebuilt.vector == pytest.approx(fresh.vector)


class TestProfileUpdater:
    """Offline profile maintenance against the interaction log."""

    def test_update_is_idempotent(self, engine, catalog, clock):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.LIKE, clock.now - timedelta(days=1)))
        log.append(_event("u1", "roof-2", EventKind.CLICK, clock.now - timedelta(hours=3)))

        first = engine.profiles.update_user("u1")
        second = engine.profiles.update_user("u1")

        assert second.vector == pytest.approx(first.vector)
        assert second.watermark == first.watermark
        assert second.event_count == first.event_count

    def test_incremental_update_equals_full_rebuild(self, engine, catalog, clock):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.LIKE, clock.now - timedelta(days=10)))
        log.append(_event("u1", "kitchen-1", EventKind.CLICK, clock.now - timedelta(days=6)))
        engine.profiles.update_user("u1")

        log.append(_event("u1", "garden-1", EventKind.COMPLETION, clock.now - timedelta(days=2), engagement=0.5))
        log.append(_event("u1", "roof-2", EventKind.COMMENT, clock.now - timedelta(hours=1)))
        incremental = engine.profiles.update_user("u1")
        full = engine.profiles.update_user("u1", full=True)

        assert incremental.event_count == full.event_count == 4
        assert incremental.watermark == full.watermark
        assert incremental.total_weight == pytest.approx(full.total_weight)
        assert incremental.weighted_sum == pytest.approx(full.weighted_sum)
        assert incremental.vector == pytest.approx(full.vector)
        for name, weight in full.category_weights.items():
            assert incremental.category_weights[name] == pytest.approx(weight)

    def test_update_all_profiles_only_touches_dirty_users(self, engine, catalog, clock):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.LIKE, clock.now - timedelta(hours=5)))
        log.append(_event("u2", "kitchen-1", EventKind.CLICK, clock.now - timedelta(hours=4)))

        assert engine.profiles.update_all_profiles() == 2
        assert engine.profiles.update_all_profiles() == 0

        log.append(_event("u2", "garden-1", EventKind.CLICK, clock.now - timedelta(hours=1)))
        assert engine.profiles.update_all_profiles() == 1
        assert engine.stores.profiles.get("u2").event_count == 2

    def test_late_event_with_older_timestamp_is_folded(self, engine, catalog, clock):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.CLICK, clock.now))
        assert engine.profiles.update_all_profiles() == 1

        log.append(_event("u1", "kitchen-1", EventKind.LIKE, clock.now - timedelta(hours=1)))
        assert engine.profiles.update_all_profiles() == 1

        incremental = engine.stores.profiles.get("u1")
        full = engine.profiles.update_user("u1", full=True)
        assert incremental.event_count == full.event_count == 2
        assert incremental.watermark == full.watermark == clock.now
        assert incremental.weighted_sum == pytest.approx(full.weighted_sum)
        assert incremental.category_weights["kitchen"] == pytest.approx(full.category_weights["kitchen"])
        assert engine.profiles.update_all_profiles() == 0

    def test_profile_without_log_position_is_rebuilt(self, engine, catalog, clock):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.LIKE, clock.now - timedelta(hours=2)))
        log.append(_event("u1", "kitchen-1", EventKind.CLICK, clock.now - timedelta(hours=1)))
        built = engine.profiles.update_user("u1")
        engine.stores.profiles.put(built.model_copy(update={"log_position": None, "event_count": 1}))

        assert engine.profiles.update_all_profiles() == 1
        assert engine.stores.profiles.get("u1").event_count == 2
        assert engine.stores.profiles.get("u1").log_position == log.log_size("u1")

    def test_profile_behind_in_log_does_not_overwrite(self, engine, catalog, clock):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.LIKE, clock.now))
        first = engine.profiles.update_user("u1")
        log.append(_event("u1", "roof-2", EventKind.CLICK, clock.now - timedelta(hours=2)))
        engine.profiles.update_user("u1")

        assert not engine.stores.profiles.put_if_newer(first)
        assert engine.stores.profiles.get("u1").event_count == 2

    def test_update_all_profiles_isolates_failures(self, engine, catalog, clock, monkeypatch):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.LIKE, clock.now - timedelta(hours=5)))
        log.append(_event("u2", "kitchen-1", EventKind.CLICK, clock.now - timedelta(hours=4)))
        original = engine.profiles.update_user

        def flaky(user_id, full=False):
            if user_id == "u1":
                raise RuntimeError("storage hiccup")
            return original(user_id, full)

        monkeypatch.setattr(engine.profiles, "update_user", flaky)

        assert engine.profiles.update_all_profiles() == 1
        assert engine.stores.profiles.get("u1") is None
        assert engine.stores.profiles.get("u2") is not None

    def test_older_profile_does_not_overwrite_newer(self, engine, catalog, clock):
        log = engine.stores.interactions
        log.append(_event("u1", "roof-1", EventKind.LIKE, clock.now - timedelta(hours=5)))
        log.append(_event("u1", "roof-2", EventKind.LIKE, clock.now - timedelta(hours=1)))
        newer = engine.profiles.update_user("u1")
        older = newer.model_copy(update={"watermark": clock.now - timedelta(hours=5), "event_count": 1})

        assert not engine.stores.profiles.put_if_newer(older)
        assert engine.stores.profiles.get("u1").watermark == newer.watermark
