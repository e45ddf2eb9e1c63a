"""
Shared fakes and fixtures for the test modules beside the code.

The fakes implement the collaborator contracts in ``interfaces.py`` in
memory, record their calls, and fail on demand.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

import pytest
from langchain_core.messages import AIMessage
from langchain_core.runnables import Runnable

from news_personalizer.config import LOG_FORMAT
from news_personalizer.interfaces import (
    ArticleStore,
    EmbeddingProvider,
    InteractionStore,
    PreferenceStore,
    TextGenerator,
    VectorIndex,
)
from news_personalizer.models import (
    ChunkMetadata,
    InteractionRecord,
    NewsArticle,
    SearchResult,
    TextChunk,
    UserPreferences,
)

logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeEmbeddingProvider(EmbeddingProvider):
    def __init__(self, dimension: int = 4, error: Optional[Exception] = None):
        self.dimension = dimension
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return [float(len(text) % 7 + i) for i in range(self.dimension)]


class ScriptedGenerator(TextGenerator):
    """
    Replies from a script, in order. A script item may be a string, an
    exception to raise, or a callable receiving (system, user).
    """

    def __init__(self, responses: Optional[List] = None, default: str = "Generated text."):
        self.responses = list(responses or [])
        self.default = default
        self.calls: List[tuple] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(system_prompt, user_prompt)
        return response


class FakeVectorIndex(VectorIndex):
    """
    ``responses`` are returned by successive ``query`` calls; the last one repeats.
    """

    def __init__(self, responses: Optional[List[List[SearchResult]]] = None,
                 chunks: Optional[List[TextChunk]] = None, error: Optional[Exception] = None):
        self.responses = list(responses or [[]])
        self.chunks = list(chunks or [])
        self.error = error
        self.queries: List[tuple] = []

    async def query(self, embedding, filters, limit=None):
        self.queries.append((embedding, filters))
        if self.error:
            raise self.error
        if len(self.responses) > 1:
            return list(self.responses.pop(0))
        return list(self.responses[0])

    async def get_chunks_by_article(self, article_id):
        if self.error:
            raise self.error
        return [chunk for chunk in self.chunks if chunk.article_id == article_id]

    async def get_chunks_in_range(self, date_range):
        if self.error:
            raise self.error
        return [chunk for chunk in self.chunks
                if date_range.start <= chunk.metadata.published_at <= date_range.end]


class InMemoryInteractionStore(InteractionStore):
    def __init__(self, records: Optional[List[InteractionRecord]] = None):
        self.records: List[InteractionRecord] = list(records or [])
        self.articles: Dict[str, NewsArticle] = {}
        self.insert_error: Optional[Exception] = None
        self.fetch_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.fetch_calls = 0
        self.fetch_windows: List[tuple] = []

    async def insert_interaction(self, interaction):
        if self.insert_error:
            raise self.insert_error
        article = self.articles.get(interaction.article_id)
        self.records.append(InteractionRecord(
            user_id=interaction.user_id,
            article_id=interaction.article_id,
            action=interaction.action,
            timestamp=interaction.timestamp,
            category=article.category if article else None,
            source=article.source if article else None,
            tags=list(article.tags) if article else [],
        ))

    async def fetch_interactions(self, user_id, limit=None, offset=0):
        self.fetch_calls += 1
        self.fetch_windows.append((limit, offset))
        if self.fetch_error:
            raise self.fetch_error
        records = sorted((r for r in self.records if r.user_id == user_id),
                         key=lambda r: r.timestamp, reverse=True)
        return records[offset:offset + limit] if limit else records

    async def delete_interactions_before(self, user_id, cutoff):
        if self.delete_error:
            raise self.delete_error
        self.records = [r for r in self.records if r.user_id != user_id or r.timestamp >= cutoff]

    async def delete_user_interactions(self, user_id):
        if self.delete_error:
            raise self.delete_error
        self.records = [r for r in self.records if r.user_id != user_id]


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self):
        self.saved: Dict[str, UserPreferences] = {}

    async def get_preferences(self, user_id):
        return self.saved.get(user_id)

    async def save_preferences(self, preferences):
        self.saved[preferences.user_id] = preferences


class InMemoryArticleStore(ArticleStore):
    def __init__(self, articles: Optional[List[NewsArticle]] = None):
        self.articles = {article.id: article for article in articles or []}

    async def get_articles(self, article_ids):
        return [self.articles[article_id] for article_id in article_ids if article_id in self.articles]


class MockLLM(Runnable):
    """LangChain runnable that answers every call with a fixed message."""

    def __init__(self, reply: Union[str, list] = "Mock LLM response."):
        self.reply = reply
        self.inputs = []

    def invoke(self, input_data, config=None, **kwargs) -> AIMessage:
        self.inputs.append(input_data)
        return AIMessage(content=self.reply)


def build_article(article_id: str, content: str = "Some article content.", headline: Optional[str] = None,
                  source: str = "bbc", category: str = "technology",
                  published_at: datetime = NOW, tags: Optional[List[str]] = None) -> NewsArticle:
    return NewsArticle(
        id=article_id,
        headline=headline or f"Headline {article_id}",
        content=content,
        source=source,
        category=category,
        published_at=published_at,
        url=f"https://news.example/{article_id}",
        tags=list(tags or []),
    )


def build_result(chunk_id: str, score: float, article_id: Optional[str] = None, source: str = "bbc",
                 category: str = "technology", published_at: datetime = NOW - timedelta(days=30),
                 content: str = "chunk content") -> SearchResult:
    chunk = TextChunk(
        id=chunk_id,
        article_id=article_id or f"article-{chunk_id}",
        content=content,
        metadata=ChunkMetadata(source=source, category=category, published_at=published_at),
    )
    return SearchResult(chunk=chunk, relevance_score=score)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def make_article():
    return build_article


@pytest.fixture
def make_result():
    return build_result


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def generator_factory():
    return ScriptedGenerator


@pytest.fixture
def index_factory():
    return FakeVectorIndex


@pytest.fixture
def interaction_store() -> InMemoryInteractionStore:
    return InMemoryInteractionStore()


@pytest.fixture
def preference_store() -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore()


@pytest.fixture
def article_store_factory():
    return InMemoryArticleStore


@pytest.fixture
def mock_llm_factory():
    return MockLLM
