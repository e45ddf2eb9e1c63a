"""
Contracts for the external collaborators the core talks to.

Every service receives its collaborators through its constructor; tests
substitute in-memory fakes for these abstract classes.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .models import (
    DateRange,
    InteractionRecord,
    NewsArticle,
    SearchFilters,
    SearchResult,
    TextChunk,
    UserInteraction,
    UserPreferences,
)


class EmbeddingProvider(ABC):
    """text -> fixed-length vector"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        ...


class TextGenerator(ABC):
    """(system prompt, user prompt) -> text"""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


class VectorIndex(ABC):
    """Nearest-neighbour search over article-chunk embeddings."""

    @abstractmethod
    async def query(self, embedding: List[float], filters: SearchFilters,
                    limit: Optional[int] = None) -> List[SearchResult]:
        """Return results ordered by descending relevance."""

    @abstractmethod
    async def get_chunks_by_article(self, article_id: str) -> List[TextChunk]:
        ...

    @abstractmethod
    async def get_chunks_in_range(self, date_range: DateRange) -> List[TextChunk]:
        ...


class InteractionStore(ABC):
    """Append-only interaction log, owned by the tracking subsystem."""

    @abstractmethod
    async def insert_interaction(self, interaction: UserInteraction) -> None:
        ...

    @abstractmethod
    async def fetch_interactions(self, user_id: str, limit: Optional[int] = None,
                                 offset: int = 0) -> List[InteractionRecord]:
        """
        Return the user's interactions newest first, joined with article metadata.

        ``offset`` skips that many of the newest records; it applies together with ``limit``.
        """

    @abstractmethod
    async def delete_interactions_before(self, user_id: str, cutoff: datetime) -> None:
        ...

    @abstractmethod
    async def delete_user_interactions(self, user_id: str) -> None:
        ...


class PreferenceStore(ABC):

    @abstractmethod
    async def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        ...

    @abstractmethod
    async def save_preferences(self, preferences: UserPreferences) -> None:
        ...


class ArticleStore(ABC):

    @abstractmethod
    async def get_articles(self, article_ids: List[str]) -> List[NewsArticle]:
        ...
