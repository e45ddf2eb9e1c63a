import asyncio
import logging
from datetime import timedelta

import pytest

from news_personalizer.config import InteractionLearnerConfig
from news_personalizer.exceptions import InteractionLearnerError
from news_personalizer.models import (
    InteractionAction,
    InteractionRecord,
    UserInteraction,
    UserPreferences,
)
from news_personalizer.personalization.interaction_learner import (
    InteractionLearner,
    calculate_trend,
    compare_activity,
)


def record(now, action, hours_ago, source="bbc", category="technology", tags=(), user_id="u1"):
    return InteractionRecord(
        user_id=user_id,
        article_id=f"{source}-{hours_ago}",
        action=action,
        timestamp=now - timedelta(hours=hours_ago),
        category=category,
        source=source,
        tags=list(tags),
    )


def mixed_history(now):
    """45 recent bbc likes tagged 'ai' (two also 'chips') and 6 cnn hides with falling activity."""
    likes = [record(now, "like", i, tags=["ai", "chips"] if i < 2 else ["ai"]) for i in range(45)]
    hides = [record(now, "hide", h, source="cnn", category="world") for h in (10, 30, 31, 32, 33, 34)]
    return likes + hides


def test_track_interaction_joins_article_metadata(interaction_store, clock, now, make_article):
    interaction_store.articles["a1"] = make_article("a1", category="science", source="reuters", tags=["space"])
    learner = InteractionLearner(interaction_store, clock=clock)

    asyncio.run(learner.track_interaction(UserInteraction("u1", "a1", InteractionAction.LIKE, timestamp=now)))

    stored = interaction_store.records[0]
    assert (stored.category, stored.source, stored.tags) == ("science", "reuters", ["space"])


def test_track_interaction_prunes_to_history_limit(interaction_store, clock, now):
    interaction_store.records = [record(now, "like", h) for h in range(1, 6)]
    config = InteractionLearnerConfig(max_interaction_history=5)
    learner = InteractionLearner(interaction_store, config, clock=clock)

    asyncio.run(learner.track_interaction(UserInteraction("u1", "new", "read_more", timestamp=now)))

    remaining = sorted(r.timestamp for r in interaction_store.records)
    assert len(remaining) == 5
    assert remaining[0] == now - timedelta(hours=4)
    assert remaining[-1] == now


def test_pruning_reads_only_the_boundary_window(interaction_store, clock, now, caplog):
    interaction_store.records = [record(now, "like", h) for h in range(1, 5)]
    interaction_store.delete_error = ConnectionError("should not delete")
    learner = InteractionLearner(interaction_store, InteractionLearnerConfig(max_interaction_history=5), clock=clock)

    with caplog.at_level(logging.WARNING):
        asyncio.run(learner.track_interaction(UserInteraction("u1", "new", "like", timestamp=now)))

    assert interaction_store.fetch_windows == [(2, 4)]
    assert len(interaction_store.records) == 5
    assert "Failed to cleanup" not in caplog.text


def test_pruning_failure_is_only_logged(interaction_store, clock, now, caplog):
    interaction_store.records = [record(now, "like", h) for h in range(1, 6)]
    interaction_store.delete_error = ConnectionError("delete refused")
    learner = InteractionLearner(interaction_store, InteractionLearnerConfig(max_interaction_history=5), clock=clock)

    with caplog.at_level(logging.WARNING):
        asyncio.run(learner.track_interaction(UserInteraction("u1", "new", "like", timestamp=now)))

    assert len(interaction_store.records) == 6
    assert "Failed to cleanup old interactions" in caplog.text


def test_insert_failure_raises(interaction_store, clock, now):
    interaction_store.insert_error = ConnectionError("datastore down")
    learner = InteractionLearner(interaction_store, clock=clock)

    with pytest.raises(InteractionLearnerError) as exc_info:
        asyncio.run(learner.track_interaction(UserInteraction("u1", "a1", "like", timestamp=now)))

    assert exc_info.value.code == "TRACK_FAILED"
    assert isinstance(exc_info.value.cause, ConnectionError)


def test_below_learning_floor_gives_empty_insights(interaction_store, clock, now):
    interaction_store.records = [record(now, "like", h) for h in range(4)]
    learner = InteractionLearner(interaction_store, clock=clock)

    insights = asyncio.run(learner.analyze_interactions("u1"))

    assert insights.total_interactions == 0
    assert insights.learning_confidence == 0.0
    assert insights.top_sources == []
    assert insights.recommended_preference_updates == {}
    assert insights.last_analyzed == now


def test_learning_confidence_curve(interaction_store, clock):
    learner = InteractionLearner(interaction_store, clock=clock)

    assert learner.calculate_learning_confidence(4) == 0.0
    assert learner.calculate_learning_confidence(5) == 0.3
    assert learner.calculate_learning_confidence(10) == 0.48
    assert learner.calculate_learning_confidence(45) == 1.0
    assert learner.calculate_learning_confidence(5000) == 1.0

    values = [learner.calculate_learning_confidence(n) for n in range(0, 200)]
    assert values == sorted(values)
    assert all(0.0 <= value <= 1.0 for value in values)


def test_ten_likes_on_one_source_adds_it_to_preferred(interaction_store, clock, now):
    interaction_store.records = [record(now, "like", h) for h in range(10)]
    learner = InteractionLearner(interaction_store, clock=clock)

    result = asyncio.run(learner.update_preferences_from_interactions(
        "u1", UserPreferences(user_id="u1", topics=["technology"])))

    assert result.learning_insights.learning_confidence == 0.48
    assert [change.field for change in result.changes] == ["preferred_sources"]
    assert result.changes[0].old_value == []
    assert result.changes[0].new_value == ["bbc"]
    assert result.changes[0].confidence == 0.48
    assert result.updated_preferences.preferred_sources == ["bbc"]
    assert result.updated_preferences.last_updated == now


def test_low_confidence_changes_nothing(interaction_store, clock, now):
    interaction_store.records = [record(now, "like", h) for h in range(10)]
    config = InteractionLearnerConfig(min_confidence_for_update=0.5)
    learner = InteractionLearner(interaction_store, config, clock=clock)
    current = UserPreferences(user_id="u1", topics=["technology"])

    result = asyncio.run(learner.update_preferences_from_interactions("u1", current))

    assert result.changes == []
    assert result.updated_preferences is current


def test_insights_from_mixed_history(interaction_store, clock, now):
    interaction_store.records = mixed_history(now)
    learner = InteractionLearner(interaction_store, clock=clock)

    insights = asyncio.run(learner.analyze_interactions("u1"))

    assert insights.total_interactions == 51
    assert insights.learning_confidence == 1.0
    assert [stat.item for stat in insights.top_sources] == ["bbc", "cnn"]
    assert [stat.item for stat in insights.top_categories] == ["technology", "world"]
    assert insights.top_sources[0].positive_ratio == 1.0
    assert insights.top_sources[1].negative_interactions == 6
    assert insights.top_sources[1].trend == "decreasing"
    assert insights.emerging_topics == ["ai", "chips"]
    assert insights.declining_sources == ["cnn"]
    assert insights.recommended_preference_updates == {
        'topics': ["ai", "chips"],
        'preferred_sources': ["bbc"],
        'excluded_sources': ["cnn"],
    }


def test_category_learning_can_be_disabled(interaction_store, clock, now):
    interaction_store.records = mixed_history(now)
    learner = InteractionLearner(interaction_store, InteractionLearnerConfig(category_learning_enabled=False),
                                 clock=clock)

    insights = asyncio.run(learner.analyze_interactions("u1"))

    assert insights.top_categories == []
    assert insights.top_sources


def test_update_keeps_preferred_and_excluded_disjoint(interaction_store, clock, now):
    interaction_store.records = mixed_history(now)
    learner = InteractionLearner(interaction_store, clock=clock)
    current = UserPreferences(user_id="u1", topics=["science"], preferred_sources=["cnn"])

    result = asyncio.run(learner.update_preferences_from_interactions("u1", current))
    updated = result.updated_preferences

    assert [change.field for change in result.changes] == ["topics", "preferred_sources", "excluded_sources"]
    assert updated.topics == ["science", "ai", "chips"]
    assert updated.preferred_sources == ["bbc"]
    assert updated.excluded_sources == ["cnn"]
    assert not set(updated.preferred_sources) & set(updated.excluded_sources)
    assert current.preferred_sources == ["cnn"]
    assert current.excluded_sources == []


def test_old_positive_tags_are_not_emerging(interaction_store, clock, now):
    interaction_store.records = [record(now, "like", 24 * 8 + h, tags=["archive"]) for h in range(6)]
    learner = InteractionLearner(interaction_store, clock=clock)

    insights = asyncio.run(learner.analyze_interactions("u1"))

    assert insights.emerging_topics == []


def test_user_interaction_stats(interaction_store, clock, now):
    interaction_store.records = [
        record(now, "like", 1),
        record(now, "like", 2),
        record(now, InteractionAction.HIDE, 3),
        record(now, "read_more", 24 * 8),
        record(now, "share", 1, user_id="someone-else"),
    ]
    learner = InteractionLearner(interaction_store, clock=clock)

    stats = asyncio.run(learner.get_user_interaction_stats("u1"))

    assert stats.total_interactions == 4
    assert stats.recent_interactions == 3
    assert stats.top_actions == [
        {'action': 'like', 'count': 2},
        {'action': 'hide', 'count': 1},
        {'action': 'read_more', 'count': 1},
    ]
    assert stats.activity_trend == "increasing"


def test_stats_for_unknown_user(interaction_store, clock):
    stats = asyncio.run(InteractionLearner(interaction_store, clock=clock).get_user_interaction_stats("nobody"))
    assert stats.total_interactions == 0
    assert stats.top_actions == []
    assert stats.activity_trend == "stable"


def test_reset_user_learning(interaction_store, clock, now):
    interaction_store.records = [record(now, "like", 1), record(now, "like", 2, user_id="u2")]
    learner = InteractionLearner(interaction_store, clock=clock)

    asyncio.run(learner.reset_user_learning("u1"))

    assert [r.user_id for r in interaction_store.records] == ["u2"]


def test_reset_and_fetch_failures_raise(interaction_store, clock):
    learner = InteractionLearner(interaction_store, clock=clock)

    interaction_store.delete_error = ConnectionError("no")
    with pytest.raises(InteractionLearnerError) as reset_error:
        asyncio.run(learner.reset_user_learning("u1"))

    interaction_store.fetch_error = TimeoutError("slow")
    with pytest.raises(InteractionLearnerError) as fetch_error:
        asyncio.run(learner.analyze_interactions("u1"))

    assert reset_error.value.code == "RESET_FAILED"
    assert fetch_error.value.code == "FETCH_FAILED"


def test_calculate_trend(now):
    def at(*hours):
        return [now - timedelta(hours=h) for h in hours]

    assert calculate_trend([]) == "stable"
    assert calculate_trend(at(5)) == "stable"
    assert calculate_trend(at(0, 1, 2, 20, 30, 40)) == "increasing"
    assert calculate_trend(at(10, 30, 31, 32, 33, 34)) == "decreasing"
    assert calculate_trend(at(*range(10))) == "stable"


def test_compare_activity_band():
    assert compare_activity(12, 10) == "stable"
    assert compare_activity(13, 10) == "increasing"
    assert compare_activity(8, 10) == "stable"
    assert compare_activity(7, 10) == "decreasing"
    assert compare_activity(0, 0) == "stable"
