from datetime import datetime, timedelta, timezone

import pytest

from recommendation_service import ContentNotFoundError, InvalidRequestError, default_engine_config
from recommendation_service.models import (
    ContentItem,
    ContentVector,
    EventKind,
    InteractionEvent,
    RecommendationSource,
    UserProfile,
)
from recommendation_service.recommendations import (
    Candidate,
    CollaborativeStrategy,
    Neighbor,
    RankedCandidate,
    RecommendationEngine,
    diversify,
    engagement_by_content,
    nearest_profiles,
    popularity_scores,
)

CATALOG = [
    ("roof-repair-1", "Roof repair basics", "Repair leaking roof shingles and flashing", "roofing"),
    ("roof-repair-2", "Emergency roof repair", "Patch a roof leak after storms and repair shingles", "roofing"),
    ("roof-repair-3", "Roof repair costs", "What roof shingle repair costs and when to repair", "roofing"),
    ("gutter-1", "Gutter repair", "Repair sagging gutters and downspouts near the roof", "exterior"),
    ("kitchen-design-1", "Kitchen design ideas", "Design a kitchen with open shelving and islands", "kitchen"),
    ("kitchen-design-2", "Small kitchen design", "Kitchen design tips for cabinets in small spaces", "kitchen"),
    ("bath-1", "Bathroom tiles", "Choose bathroom tiles and grout colors", "bathroom"),
    ("garden-1", "Garden soil", "Compost improves garden soil structure", "garden"),
]


def _event(user_id, content_id, kind, ts, **extra):
    return InteractionEvent(user_id=user_id, content_id=content_id, kind=kind, timestamp=ts, **extra)


@pytest.fixture
def catalog(engine, clock):
    for index, (content_id, title, body, category) in enumerate(CATALOG):
        engine.catalog.upsert_item(ContentItem(
            content_id=content_id,
            title=title,
            body=body,
            categories=[category],
            published_at=clock.now - timedelta(days=30 - index),
        ))
    return engine.catalog


@pytest.fixture
def roof_fan(engine, catalog, clock):
    """A user whose history is all roof repair."""
    log = engine.stores.interactions
    log.append(_event("roof-fan", "roof-repair-1", EventKind.LIKE, clock.now - timedelta(days=2)))
    log.append(_event("roof-fan", "gutter-1", EventKind.COMPLETION, clock.now - timedelta(days=1)))
    engine.profiles.update_user("roof-fan")
    return "roof-fan"


class TestPersonalizedRecommendations:
    """Profile-driven ranking through the service."""

    def test_roof_repair_ranks_above_kitchen_design(self, engine, roof_fan):
        result = engine.recommendations.get_recommendations(roof_fan, k=8)

        assert result.source is RecommendationSource.PERSONALIZED
        assert result.items[0].category == "roofing"
        roofing = [item for item in result.items if item.category == "roofing"]
        kitchen = [item for item in result.items if item.category == "kitchen"]
        assert min(i.score for i in roofing) > max(i.score for i in kitchen)
        assert min(i.rank for i in roofing) < min(i.rank for i in kitchen)

    def test_list_has_no_duplicates_and_dense_ranks(self, engine, roof_fan):
        result = engine.recommendations.get_recommendations(roof_fan, k=6)

        assert len(result.content_ids) == len(set(result.content_ids))
        assert [item.rank for item in result.items] == list(range(1, len(result.items) + 1))
        assert all(item.reason for item in result.items)

    def test_recently_shown_items_are_excluded(self, engine, roof_fan, clock):
        log = engine.stores.interactions
        log.append(_event(roof_fan, "roof-repair-2", EventKind.IMPRESSION, clock.now - timedelta(hours=2),
                          source=RecommendationSource.PERSONALIZED))
        log.append(_event(roof_fan, "roof-repair-3", EventKind.IMPRESSION, clock.now - timedelta(hours=30),
                          source=RecommendationSource.PERSONALIZED))

        ids = engine.recommendations.get_recommendations(roof_fan, k=8).content_ids

        assert "roof-repair-2" not in ids
        # Outside the 24h cool-down, so eligible again
        assert "roof-repair-3" in ids

    def test_generation_is_deterministic(self, engine, roof_fan):
        first = engine.recommendations.get_recommendations(roof_fan, k=5, persist=False)
        second = engine.recommendations.get_recommendations(roof_fan, k=5, persist=False)

        assert first.content_ids == second.content_ids
        assert [i.score for i in first.items] == [i.score for i in second.items]

    def test_list_is_persisted_per_user(self, engine, roof_fan):
        result = engine.recommendations.get_recommendations(roof_fan, k=3)

        stored = engine.recommendations.last_recommendations(roof_fan)
        assert stored.recommendation_id == result.recommendation_id
        assert stored.content_ids == result.content_ids

    @pytest.mark.parametrize("k", [0, -1, 51])
    def test_k_out_of_range_is_rejected(self, engine, roof_fan, k):
        with pytest.raises(InvalidRequestError):
            engine.recommendations.get_recommendations(roof_fan, k=k)

    def test_default_k_is_used(self, engine, roof_fan):
        result = engine.recommendations.get_recommendations(roof_fan)

        assert result.k == engine.config.recommendations.default_k


class TestColdStart:
    """Users without a usable profile fall back to popularity."""

    def test_unknown_user_gets_popular_items(self, engine, catalog, clock):
        log = engine.stores.interactions
        for i in range(3):
            log.append(_event(f"other-{i}", "bath-1", EventKind.LIKE, clock.now - timedelta(hours=i + 1)))
        log.append(_event("other-0", "garden-1", EventKind.CLICK, clock.now - timedelta(hours=1)))

        result = engine.recommendations.get_recommendations("newcomer", k=4)

        assert result.source is RecommendationSource.POPULARITY
        assert result.content_ids[:2] == ["bath-1", "garden-1"]
        assert result.items[0].reason.startswith("Popular in the last")

    def test_empty_log_falls_back_to_recency(self, engine, catalog):
        result = engine.recommendations.get_recommendations("newcomer", k=3)

        assert result.source is RecommendationSource.POPULARITY
        # Newest published first when nothing is popular
        assert result.content_ids[0] == CATALOG[-1][0]
        assert all(item.reason == "Recently published" for item in result.items)

    def test_outdated_profile_is_rebuilt(self, engine, roof_fan):
        profile = engine.stores.profiles.get(roof_fan)
        engine.stores.profiles.put(profile.model_copy(update={"scheme_version": "v0-legacy"}))

        result = engine.recommendations.get_recommendations(roof_fan, k=3)

        assert result.source is RecommendationSource.PERSONALIZED
        assert engine.stores.profiles.get(roof_fan).scheme_version == engine.extractor.scheme_version


class TestSimilarContent:

    def test_similar_items_exclude_anchor(self, engine, catalog):
        result = engine.recommendations.similar_to("roof-repair-1", k=3)

        assert result.source is RecommendationSource.SIMILAR_CONTENT
        assert "roof-repair-1" not in result.content_ids
        assert result.items[0].category == "roofing"

    def test_unknown_anchor_raises(self, engine, catalog):
        with pytest.raises(ContentNotFoundError):
            engine.recommendations.similar_to("nope")


class TestCollaborative:
    """User-to-user recommendations from the nearest profiles."""

    @pytest.fixture
    def neighbors(self, engine, roof_fan, clock):
        log = engine.stores.interactions
        log.append(_event("roofer", "roof-repair-1", EventKind.LIKE, clock.now - timedelta(days=3)))
        log.append(_event("roofer", "roof-repair-2", EventKind.LIKE, clock.now - timedelta(days=2)))
        log.append(_event("cook", "kitchen-design-1", EventKind.LIKE, clock.now - timedelta(days=2)))
        log.append(_event("cook", "kitchen-design-2", EventKind.IMPRESSION, clock.now - timedelta(days=1)))
        engine.profiles.update_all_profiles()
        return roof_fan

    def test_items_liked_by_similar_users_rank_first(self, engine, neighbors):
        result = engine.recommendations.collaborative_for(neighbors, k=5)

        assert result.source is RecommendationSource.COLLABORATIVE
        assert result.content_ids[0] == "roof-repair-2"
        assert result.items[0].reason == "Users with similar tastes engaged with this"

    def test_own_and_unengaged_content_is_left_out(self, engine, neighbors):
        ids = set(engine.recommendations.collaborative_for(neighbors, k=10).content_ids)

        assert ids <= {"roof-repair-2", "kitchen-design-1"}
        assert not ids & {"roof-repair-1", "gutter-1", "kitchen-design-2"}

    def test_similar_users_are_ordered_by_similarity(self, engine, neighbors):
        similar = engine.recommendations.similar_users(neighbors)

        assert similar[0].user_id == "roofer"
        assert all(n.user_id != neighbors for n in similar)
        assert [n.similarity for n in similar] == sorted((n.similarity for n in similar), reverse=True)

    def test_user_without_profile_falls_back_to_popularity(self, engine, neighbors):
        result = engine.recommendations.collaborative_for("newcomer", k=3)

        assert result.source is RecommendationSource.POPULARITY

    def test_list_is_persisted_and_stamped_with_engine_clock(self, engine, neighbors, clock):
        result = engine.recommendations.collaborative_for(neighbors, k=3)

        assert result.generated_at == clock.now
        assert engine.recommendations.last_recommendations(neighbors).recommendation_id == result.recommendation_id


# ---------------------------------------------------------------------------
# Pure engine helpers
# ---------------------------------------------------------------------------


def _candidate(content_id, category, days_ago=0):
    vector = ContentVector(content_id=content_id, values=[1.0, 0.0], scheme_version="test", dimension=2)
    published = datetime(2025, 1, 31, tzinfo=timezone.utc) - timedelta(days=days_ago)
    return Candidate(content_id=content_id, vector=vector, published_at=published, category=category)


def _ranked(entries):
    return [RankedCandidate(candidate=_candidate(cid, cat), score=score, reason="") for cid, cat, score in entries]


class TestDiversify:

    def test_cap_of_one_never_repeats_a_category(self):
        ranked = _ranked([
            ("a1", "a", 0.9), ("a2", "a", 0.8), ("b1", "b", 0.7),
            ("a3", "a", 0.6), ("c1", "c", 0.5), ("b2", "b", 0.4),
        ])

        selected = diversify(ranked, k=5, max_per_category=1)

        categories = [r.candidate.category for r in selected]
        assert categories == ["a", "b", "c"]
        assert all(x != y for x, y in zip(categories, categories[1:]))

    def test_prefers_alternating_categories(self):
        ranked = _ranked([("a1", "a", 0.9), ("a2", "a", 0.8), ("b1", "b", 0.1)])

        selected = diversify(ranked, k=3, max_per_category=3)

        assert [r.candidate.content_id for r in selected] == ["a1", "b1", "a2"]

    def test_uncategorized_items_are_not_capped(self):
        ranked = _ranked([("x1", None, 0.9), ("x2", None, 0.8), ("x3", None, 0.7)])

        selected = diversify(ranked, k=3, max_per_category=1)

        assert len(selected) == 3

    def test_may_return_fewer_than_k(self):
        ranked = _ranked([("a1", "a", 0.9), ("a2", "a", 0.8)])

        assert len(diversify(ranked, k=5, max_per_category=1)) == 1


class TestRecommendationEngine:

    def test_ties_break_by_recency_then_id(self):
        config = default_engine_config().recommendations
        engine = RecommendationEngine(config, "test")
        candidates = [_candidate("b", None, days_ago=1), _candidate("a", None, days_ago=1), _candidate("c", None)]

        result = engine.generate(None, candidates, k=3, popularity={})

        assert result.content_ids == ["c", "a", "b"]

    def test_duplicate_candidates_are_collapsed(self):
        engine = RecommendationEngine(default_engine_config().recommendations, "test")
        candidates = [_candidate("a", None), _candidate("a", None), _candidate("b", None)]

        result = engine.generate(None, candidates, k=5, popularity={"a": 1.0})

        assert result.content_ids == ["a", "b"]

    def test_popularity_scores_decay_and_window(self):
        now = datetime(2025, 1, 31, tzinfo=timezone.utc)
        weights = default_engine_config().recommendations.popularity_weights
        events = [
            _event("u1", "fresh", EventKind.CLICK, now),
            _event("u2", "half", EventKind.CLICK, now - timedelta(days=3.5)),
            _event("u3", "old", EventKind.LIKE, now - timedelta(days=8)),
            _event("u4", "fresh", EventKind.IMPRESSION, now),
        ]

        scores = popularity_scores(events, weights, now, window_days=7)

        assert scores["fresh"] == pytest.approx(1.0)
        assert scores["half"] == pytest.approx(0.5)
        assert "old" not in scores


def _profile(user_id, vector, scheme="test"):
    return UserProfile(
        user_id=user_id, vector=vector, weighted_sum=vector, scheme_version=scheme, dimension=len(vector)
    )


class TestNeighbors:

    def test_nearest_profiles_filters_and_orders(self):
        me = _profile("me", [1.0, 0.0, 0.0])
        others = [
            me,
            _profile("close", [0.9, 0.1, 0.0]),
            _profile("tied-b", [0.6, 0.8, 0.0]),
            _profile("tied-a", [0.6, 0.0, 0.8]),
            _profile("far", [0.0, 1.0, 0.0]),
            _profile("empty", [0.0, 0.0, 0.0]),
            _profile("legacy", [1.0, 0.0, 0.0], scheme="v0"),
        ]

        neighbors = nearest_profiles(me, others, limit=3, min_similarity=0.3)

        assert [n.user_id for n in neighbors] == ["close", "tied-a", "tied-b"]
        assert nearest_profiles(me, others, limit=1, min_similarity=0.3)[0].user_id == "close"

    def test_collaborative_scores_are_similarity_weighted(self):
        neighbors = [Neighbor("a", 0.75), Neighbor("b", 0.25)]
        engagement = {"a": {"x": 2.0}, "b": {"x": 2.0, "y": 4.0}}
        strategy = CollaborativeStrategy(neighbors, engagement)

        scores = strategy.score([_candidate("x", None), _candidate("y", None), _candidate("z", None)])

        assert scores["x"].value == pytest.approx(2.0)
        assert scores["y"].value == pytest.approx(1.0)
        assert "z" not in scores
        assert scores["x"].metadata == {"similar_users_engaged": 2}

    def test_engagement_ignores_zero_weight_kinds(self):
        now = datetime(2025, 1, 31, tzinfo=timezone.utc)
        weights = default_engine_config().recommendations.popularity_weights
        events = [
            _event("u1", "a", EventKind.LIKE, now),
            _event("u1", "a", EventKind.CLICK, now),
            _event("u1", "b", EventKind.IMPRESSION, now),
        ]

        assert engagement_by_content(events, weights) == {"a": pytest.approx(3.0)}

    def test_generated_at_comes_from_engine_clock(self):
        fixed = datetime(2025, 2, 1, 9, 30, tzinfo=timezone.utc)
        engine = RecommendationEngine(default_engine_config().recommendations, "test", clock=lambda: fixed)

        result = engine.generate(None, [_candidate("a", None)], k=1, popularity={})

        assert result.generated_at == fixed
