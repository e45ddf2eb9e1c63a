"""
Main agent that wires the personalization pipeline together.

This module provides the PersonalizedFeedAgent class which builds every
service from a FeedConfig and the external collaborators, and runs the
preferences -> search -> consolidation -> summary flow for one user.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .config import FeedConfig, setup_logging
from .exceptions import InteractionLearnerError, SummarizationError
from .interfaces import (
    ArticleStore,
    EmbeddingProvider,
    InteractionStore,
    PreferenceStore,
    TextGenerator,
    VectorIndex,
)
from .models import (
    ConsolidationRequest,
    PreferenceUpdateResult,
    Summary,
    ConsolidatedSummary,
    UserPreferences,
    utc_now,
)
from .personalization import InteractionLearner, PreferenceQueryConverter, SemanticSearchService
from .summarization import SummarizationService

logger = logging.getLogger(__name__)


class PersonalizedFeedAgent:
    """
    Orchestrates personalized retrieval and summarization.

    This class coordinates the components to:
    1. Load and sanitize the user's preferences
    2. Retrieve and re-rank relevant chunks
    3. Resolve chunks to distinct articles
    4. Deduplicate, group and consolidate them in the user's tone
    5. Apply learned preference updates on request

    Collaborators are injected; ``from_config`` builds the default
    Supabase, sentence-transformers and Gemini backed ones.
    """

    def __init__(self, index: VectorIndex, embedding_provider: EmbeddingProvider, generator: TextGenerator,
                 interaction_store: InteractionStore, preference_store: PreferenceStore,
                 article_store: ArticleStore, config: Optional[FeedConfig] = None,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize the agent.

        Args:
            index: Vector similarity index over article chunks
            embedding_provider: Text embedding provider
            generator: Text-generation provider
            interaction_store: Interaction log
            preference_store: Preference records
            article_store: Article lookups
            config: Feed configuration (uses default if None)
            clock: Source of "now" shared by the time-aware services
        """
        self.config = config or FeedConfig()
        self.config.validate()

        self.preference_store = preference_store
        self.article_store = article_store

        self.query_converter = PreferenceQueryConverter(embedding_provider, self.config.query)
        self.search_service = SemanticSearchService(
            index, embedding_provider, self.config.search,
            query_converter=self.query_converter, clock=clock,
        )
        self.interaction_learner = InteractionLearner(interaction_store, self.config.learner, clock=clock)
        self.summarization_service = SummarizationService(generator, self.config.summarization)

        self.stats: Dict[str, Any] = {
            'digests_built': 0,
            'fallback_digests': 0,
            'last_processing_time': None,
        }

        logger.info("PersonalizedFeedAgent initialized successfully")

    @classmethod
    def from_config(cls, config: Optional[FeedConfig] = None) -> 'PersonalizedFeedAgent':
        """Build the agent with the default Supabase, embedding and Gemini collaborators."""
        from .embeddings import EmbeddingManager
        from .llm import LangChainTextGenerator, create_gemini_llm
        from .supabase_manager import SupabaseManager

        config = config or FeedConfig.from_env()
        setup_logging(config.processing.log_level)

        supabase_manager = SupabaseManager(config.supabase)
        return cls(
            index=supabase_manager,
            embedding_provider=EmbeddingManager(config.embedding),
            generator=LangChainTextGenerator(create_gemini_llm(config.llm)),
            interaction_store=supabase_manager,
            preference_store=supabase_manager,
            article_store=supabase_manager,
            config=config,
        )

    async def load_preferences(self, user_id: str) -> UserPreferences:
        """Stored preferences of ``user_id``, or defaults when none are stored."""
        preferences = await self.preference_store.get_preferences(user_id)
        if preferences is None:
            logger.info(f"No stored preferences for user {user_id}, using defaults")
            preferences = UserPreferences(
                user_id=user_id,
                tone=self.config.processing.default_tone,
                reading_time=self.config.processing.default_reading_time,
            )
        return preferences

    async def build_personalized_digest(self, user_id: str,
                                        preferences: Optional[UserPreferences] = None
                                        ) -> Union[ConsolidatedSummary, Summary]:
        """
        Build the personalized summary for ``user_id``.

        Search failures propagate. A consolidation failure is logged and the
        local fallback summary of the retrieved articles is returned instead.
        """
        start_time = time.perf_counter()

        if preferences is None:
            preferences = await self.load_preferences(user_id)
        sanitized = self.query_converter.validate_preferences(preferences).sanitized_preferences

        response = await self.search_service.search_by_preferences(sanitized)
        article_ids: List[str] = []
        for result in response.results:
            if result.chunk.article_id not in article_ids:
                article_ids.append(result.chunk.article_id)
        articles = await self.article_store.get_articles(article_ids)

        logger.info(f"Retrieved {len(articles)} articles for user {user_id} "
                    f"(fallback query: {response.metrics.fallback_used})")

        try:
            summary = await self.summarization_service.generate_consolidated_summary(ConsolidationRequest(
                articles=articles,
                tone=sanitized.tone,
                max_reading_time=sanitized.reading_time,
                user_id=user_id,
            ))
        except SummarizationError as e:
            logger.warning(f"Consolidation failed for user {user_id}, serving fallback summary: {e}")
            summary = self.summarization_service.get_fallback_summary(articles, sanitized.tone)
            self.stats['fallback_digests'] += 1

        self.stats['digests_built'] += 1
        self.stats['last_processing_time'] = time.perf_counter() - start_time
        return summary

    async def apply_learned_preferences(self, user_id: str) -> PreferenceUpdateResult:
        """Run preference learning for ``user_id`` and persist the result when anything changed."""
        current = await self.load_preferences(user_id)
        result = await self.interaction_learner.update_preferences_from_interactions(user_id, current)
        if result.changes:
            try:
                await self.preference_store.save_preferences(result.updated_preferences)
            except Exception as e:
                raise InteractionLearnerError(f"Failed to save learned preferences: {e}", cause=e,
                                              code="SAVE_FAILED") from e
            logger.info(f"Saved {len(result.changes)} learned preference changes for user {user_id}")
        return result

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)
