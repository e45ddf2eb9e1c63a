import asyncio
from datetime import timedelta

import pytest

from news_personalizer.agent import PersonalizedFeedAgent
from news_personalizer.exceptions import InteractionLearnerError
from news_personalizer.models import ConsolidatedSummary, InteractionRecord, UserPreferences


@pytest.fixture
def build_agent(index_factory, embedding_provider, generator_factory, interaction_store, preference_store,
                article_store_factory, clock):
    def build(results=None, articles=None, replies=None):
        agent = PersonalizedFeedAgent(
            index=index_factory([results or []]),
            embedding_provider=embedding_provider,
            generator=generator_factory(replies),
            interaction_store=interaction_store,
            preference_store=preference_store,
            article_store=article_store_factory(articles),
            clock=clock,
        )
        return agent
    return build


def test_digest_consolidates_distinct_retrieved_articles(build_agent, make_result, make_article, now):
    results = [
        make_result("a1-0", 0.9, article_id="a1", published_at=now),
        make_result("a1-1", 0.8, article_id="a1", published_at=now),
        make_result("a2-0", 0.7, article_id="a2", published_at=now),
    ]
    articles = [make_article("a1", "Chip exports rise."), make_article("a2", "Rocket test succeeds.")]
    agent = build_agent(results, articles, ["not json", "Today's personalized narrative."])
    preferences = UserPreferences(user_id="u1", topics=["Technology"], tone="fun", reading_time=3)

    summary = asyncio.run(agent.build_personalized_digest("u1", preferences))

    assert isinstance(summary, ConsolidatedSummary)
    assert summary.content == "Today's personalized narrative."
    assert summary.tone == "fun"
    assert summary.source_articles == ["a1", "a2"]
    assert agent.get_stats()['digests_built'] == 1
    assert agent.get_stats()['fallback_digests'] == 0


def test_digest_falls_back_when_consolidation_fails(build_agent, make_result, make_article, now):
    results = [make_result("a1-0", 0.9, article_id="a1", published_at=now)]
    articles = [make_article("a1", "First sentence. Second sentence.", headline="Big story")]
    agent = build_agent(results, articles, [RuntimeError("provider down")])

    summary = asyncio.run(agent.build_personalized_digest("u1", UserPreferences(user_id="u1", topics=["x"])))

    assert summary.content == "Big story\nFirst sentence."
    assert summary.key_points[0] == "Original article content (AI summarization unavailable)"
    assert agent.get_stats()['fallback_digests'] == 1


def test_stored_or_default_preferences_are_used(build_agent, preference_store):
    agent = build_agent()

    defaults = asyncio.run(agent.load_preferences("new-user"))
    preference_store.saved["u1"] = UserPreferences(user_id="u1", tone="formal")
    stored = asyncio.run(agent.load_preferences("u1"))

    assert (defaults.user_id, defaults.tone, defaults.reading_time) == ("new-user", "casual", 5)
    assert stored.tone == "formal"


def test_apply_learned_preferences_persists_changes(build_agent, interaction_store, preference_store, now):
    interaction_store.records = [
        InteractionRecord(user_id="u1", article_id=f"a{i}", action="like",
                          timestamp=now - timedelta(hours=i), category="technology", source="bbc")
        for i in range(10)
    ]
    agent = build_agent()

    result = asyncio.run(agent.apply_learned_preferences("u1"))

    assert [change.field for change in result.changes] == ["preferred_sources"]
    assert preference_store.saved["u1"].preferred_sources == ["bbc"]


def test_apply_learned_preferences_without_changes_saves_nothing(build_agent, preference_store):
    agent = build_agent()

    result = asyncio.run(agent.apply_learned_preferences("u1"))

    assert result.changes == []
    assert preference_store.saved == {}


def test_save_failure_raises(build_agent, interaction_store, preference_store, now, monkeypatch):
    interaction_store.records = [
        InteractionRecord(user_id="u1", article_id=f"a{i}", action="like",
                          timestamp=now - timedelta(hours=i), source="bbc")
        for i in range(10)
    ]

    async def refuse(preferences):
        raise ConnectionError("write refused")

    monkeypatch.setattr(preference_store, "save_preferences", refuse)
    agent = build_agent()

    with pytest.raises(InteractionLearnerError) as exc_info:
        asyncio.run(agent.apply_learned_preferences("u1"))

    assert exc_info.value.code == "SAVE_FAILED"
