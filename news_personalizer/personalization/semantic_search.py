"""
Semantic search service for personalized content discovery.

Queries the vector index with the embedding of a user's preferences and
re-ranks the candidates with multiplicative category, source and recency
boosts. Also finds articles similar to a given one and derives trending
topics from recently published chunks.
"""

import logging
import re
import time
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..config import SemanticSearchConfig
from ..exceptions import SemanticSearchError
from ..interfaces import EmbeddingProvider, VectorIndex
from ..models import (
    DateRange,
    EnhancedSearchResult,
    SearchFilters,
    SearchMetrics,
    SearchResponse,
    SearchResult,
    SimilarArticlesResponse,
    TrendingTopic,
    UserPreferences,
    WeightedTopic,
    utc_now,
)
from .query_converter import PreferenceQueryConverter

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
TOP_METRIC_ITEMS = 5
MIN_TRENDING_KEYWORD_LENGTH = 4
MIN_TRENDING_KEYWORD_COUNT = 3


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000


class SemanticSearchService:
    """
    Personalized retrieval over the vector index.

    Features:
    - Preference-derived query with source allow-list and relevance floor
    - Fallback query with a relaxed floor when nothing matches
    - Category, source and recency boosts (never below 1.0)
    - Similar-article lookup and trending topic analysis
    - Per-call timing and result metrics

    Every failure of the index or the embedding provider is raised as
    SemanticSearchError.
    """

    def __init__(self, index: VectorIndex, embedding_provider: EmbeddingProvider,
                 config: Optional[SemanticSearchConfig] = None,
                 query_converter: Optional[PreferenceQueryConverter] = None,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize the search service.

        Args:
            index: Vector similarity index
            embedding_provider: Provider used for query and article embeddings
            config: Thresholds, boost factors and result limits
            query_converter: Converter to use instead of a default one
            clock: Source of "now" for recency and trending windows
        """
        self.index = index
        self.embedding_provider = embedding_provider
        self.config = config or SemanticSearchConfig()
        self.config.validate()
        self.query_converter = query_converter or PreferenceQueryConverter(embedding_provider)
        self.clock = clock

    async def search_by_preferences(self, preferences: UserPreferences,
                                    filters: Optional[SearchFilters] = None) -> SearchResponse:
        """
        Search for content matching ``preferences``.

        Args:
            preferences: User preferences (sanitized before use)
            filters: Extra filters; each field set here overrides the derived one

        Returns:
            SearchResponse with results sorted by final score and the call metrics
        """
        start_time = time.perf_counter()
        try:
            query_start = time.perf_counter()
            query_result = await self.query_converter.convert_preferences_to_query(preferences)
            query_processing_time = _elapsed_ms(query_start)

            sanitized = self.query_converter.validate_preferences(preferences).sanitized_preferences
            search_filters = self._build_search_filters(sanitized, filters)

            search_start = time.perf_counter()
            results = await self.index.query(query_result.query_embedding, search_filters)
            fallback_used = False

            if not results and self.config.fallback_to_popular:
                logger.info(f"No results for user {preferences.user_id or '<anonymous>'}, "
                            f"retrying with fallback query")
                fallback_query = await self.query_converter.generate_fallback_query()
                fallback_filters = search_filters.merged_with(
                    SearchFilters(min_relevance_score=self.config.fallback_relevance_threshold)
                )
                results = await self.index.query(fallback_query.query_embedding, fallback_filters)
                fallback_used = True
            vector_search_time = _elapsed_ms(search_start)

            scoring_start = time.perf_counter()
            excluded = set(sanitized.excluded_sources)
            candidates = [result for result in results
                          if result.chunk.metadata.source.lower() not in excluded]
            enhanced = self._enhance_results(candidates, sanitized, query_result.weighted_topics)
            final_results = sorted(enhanced, key=lambda result: result.final_score,
                                   reverse=True)[:self.config.max_results]
            scoring_time = _elapsed_ms(scoring_start)

        except SemanticSearchError:
            raise
        except Exception as e:
            logger.error(f"Semantic search failed: {e}")
            raise SemanticSearchError(f"Semantic search failed: {e}", cause=e) from e

        metrics = SearchMetrics(
            query_processing_time=query_processing_time,
            vector_search_time=vector_search_time,
            scoring_time=scoring_time,
            total_time=_elapsed_ms(start_time),
            results_found=len(results),
            results_after_filtering=len(final_results),
            fallback_used=fallback_used,
            average_relevance_score=self._average_relevance(final_results),
            top_categories=self._top_counts(final_results, 'category'),
            top_sources=self._top_counts(final_results, 'source'),
        )
        logger.info(f"Search returned {len(final_results)} of {len(results)} candidates "
                    f"in {metrics.total_time:.1f}ms (fallback={fallback_used})")
        return SearchResponse(results=final_results, metrics=metrics)

    async def find_similar_articles(self, article_id: str, limit: int = 5,
                                    exclude_categories: Optional[List[str]] = None) -> SimilarArticlesResponse:
        """
        Find chunks similar to the first chunk of ``article_id``, searching with
        the embedding of its content.

        Chunks of the article itself and of ``exclude_categories`` are dropped.
        An unknown article yields an empty response.
        """
        start_time = time.perf_counter()
        try:
            article_chunks = await self.index.get_chunks_by_article(article_id)
            if not article_chunks:
                logger.debug(f"No chunks indexed for article {article_id}")
                return SimilarArticlesResponse(results=[], vector_search_time=_elapsed_ms(start_time),
                                               results_found=0)

            reference = article_chunks[0]
            reference_embedding = await self.embedding_provider.embed(reference.content)
            results = await self.index.query(
                reference_embedding, SearchFilters(min_relevance_score=self.config.relevance_threshold)
            )
        except Exception as e:
            logger.error(f"Similar articles search failed for {article_id}: {e}")
            raise SemanticSearchError(f"Similar articles search failed: {e}", cause=e) from e

        excluded_categories = {category.lower() for category in exclude_categories or []}
        similar = [
            result for result in results
            if result.chunk.article_id != article_id
            and result.chunk.metadata.category.lower() not in excluded_categories
        ][:limit]

        return SimilarArticlesResponse(
            results=similar,
            vector_search_time=_elapsed_ms(start_time),
            results_found=len(similar),
        )

    async def get_trending_topics(self, window_hours: float = 24, limit: int = 10) -> List[TrendingTopic]:
        """
        Rank categories and frequent keywords among chunks published within the window.

        Scores are occurrence counts divided by the number of chunks scanned.
        Keywords are words longer than three characters occurring more than twice.
        """
        now = self.clock()
        try:
            chunks = await self.index.get_chunks_in_range(DateRange(now - timedelta(hours=window_hours), now))
        except Exception as e:
            logger.error(f"Trending topics analysis failed: {e}")
            raise SemanticSearchError(f"Trending topics analysis failed: {e}", cause=e) from e

        if not chunks:
            return []

        category_counts = Counter(chunk.metadata.category for chunk in chunks)
        keyword_counts = Counter(
            word
            for chunk in chunks
            for word in re.split(r'\W+', chunk.content.lower())
            if len(word) >= MIN_TRENDING_KEYWORD_LENGTH
        )

        total = len(chunks)
        trending = [TrendingTopic(topic=category, score=count / total, article_count=count)
                    for category, count in category_counts.items()]
        trending.extend(
            TrendingTopic(topic=keyword, score=count / total, article_count=count)
            for keyword, count in keyword_counts.most_common(limit)
            if count >= MIN_TRENDING_KEYWORD_COUNT
        )

        trending.sort(key=lambda topic: topic.score, reverse=True)
        return trending[:limit]

    def calculate_recency_boost(self, published_at: datetime, now: Optional[datetime] = None) -> float:
        """
        Recency multiplier for an article.

        Articles published within the decay window (boundary included) get
        ``1 + (1 - age/decay) * recency_boost_max``; older ones get 1.0.
        Future publish times count as age zero.
        """
        now = now or self.clock()
        age_days = max(0.0, (now - published_at).total_seconds() / SECONDS_PER_DAY)
        decay_days = self.config.recency_boost_decay_days
        if age_days <= decay_days:
            return 1 + (1 - age_days / decay_days) * self.config.recency_boost_max
        return 1.0

    def _build_search_filters(self, preferences: UserPreferences,
                              additional_filters: Optional[SearchFilters]) -> SearchFilters:
        filters = SearchFilters(min_relevance_score=self.config.relevance_threshold)

        if preferences.preferred_sources:
            # The index cannot negative-filter; excluded sources are also dropped after the query
            allowed = [source for source in preferences.preferred_sources
                       if source not in preferences.excluded_sources]
            filters.sources = allowed or None

        return filters.merged_with(additional_filters)

    def _enhance_results(self, results: List[SearchResult], preferences: UserPreferences,
                         weighted_topics: List[WeightedTopic]) -> List[EnhancedSearchResult]:
        now = self.clock()
        topic_weights: Dict[str, float] = {}
        for weighted in weighted_topics:
            topic_weights.setdefault(weighted.topic.lower(), weighted.weight)
        preferred_sources = set(preferences.preferred_sources)

        enhanced = []
        for result in results:
            metadata = result.chunk.metadata
            base_score = result.relevance_score
            category_boost = source_boost = recency_boost = 1.0
            matched_preferences = []

            if self.config.enable_category_boost and metadata.category.lower() in topic_weights:
                category_boost = self.config.category_boost_factor * topic_weights[metadata.category.lower()]
                matched_preferences.append(f"category:{metadata.category}")

            if self.config.enable_source_boost and metadata.source.lower() in preferred_sources:
                source_boost = self.config.source_boost_factor
                matched_preferences.append(f"source:{metadata.source}")

            if self.config.enable_recency_boost:
                recency_boost = self.calculate_recency_boost(metadata.published_at, now)

            enhanced.append(EnhancedSearchResult(
                chunk=result.chunk,
                relevance_score=base_score,
                base_relevance_score=base_score,
                category_boost=category_boost,
                source_boost=source_boost,
                recency_boost=recency_boost,
                final_score=base_score * category_boost * source_boost * recency_boost,
                matched_preferences=matched_preferences,
            ))
        return enhanced

    @staticmethod
    def _average_relevance(results: List[EnhancedSearchResult]) -> float:
        if not results:
            return 0.0
        return sum(result.base_relevance_score for result in results) / len(results)

    @staticmethod
    def _top_counts(results: List[EnhancedSearchResult], field_name: str) -> List[Dict[str, object]]:
        counts = Counter(getattr(result.chunk.metadata, field_name) for result in results)
        return [{field_name: value, 'count': count} for value, count in counts.most_common(TOP_METRIC_ITEMS)]
