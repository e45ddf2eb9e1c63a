"""
Preference to query conversion.

Turns a user's declared topics and preferred sources into a weighted query
text and its embedding. Weighting is expressed by repetition so any plain
text embedding model can be used.
"""

import logging
import math
import time
from typing import Iterable, List, Optional

from ..config import PreferenceQueryConfig
from ..interfaces import EmbeddingProvider
from ..models import (
    DEFAULT_READING_TIME,
    DEFAULT_TONE,
    MAX_READING_TIME,
    MIN_READING_TIME,
    TONES,
    InteractionStats,
    PreferenceQueryResult,
    PreferenceValidation,
    UserPreferences,
    WeightedTopic,
)

logger = logging.getLogger(__name__)

MIN_TOPIC_WEIGHT = 0.1
TOPIC_WEIGHT_RANGE = 1.9
TOPIC_REPETITION_SCALE = 3
SOURCE_REPETITION_SCALE = 2
WORD_BOUNDARY_RATIO = 0.8


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clean_terms(values: Optional[Iterable[str]]) -> List[str]:
    return [value.strip().lower() for value in values or [] if isinstance(value, str) and value.strip()]


class PreferenceQueryConverter:
    """
    Converts user preferences into an embedding query.

    Features:
    - Sanitization of topics, tone, reading time and source lists
    - Fallback topic set when no valid topic remains
    - Weight-proportional topic repetition
    - Word-boundary aware truncation
    """

    def __init__(self, embedding_provider: EmbeddingProvider, config: Optional[PreferenceQueryConfig] = None):
        """
        Initialize the converter.

        Args:
            embedding_provider: Provider used once per conversion
            config: Query weights, fallback topics and length limit
        """
        self.embedding_provider = embedding_provider
        self.config = config or PreferenceQueryConfig()
        self.config.validate()

    async def convert_preferences_to_query(self, preferences: UserPreferences,
                                           interaction_history: Optional[List[InteractionStats]] = None
                                           ) -> PreferenceQueryResult:
        """
        Convert preferences into a query text and embedding.

        Args:
            preferences: Raw user preferences (sanitized here)
            interaction_history: Optional per-topic feedback used for weighting

        Returns:
            PreferenceQueryResult; ``processing_time`` is in milliseconds
        """
        start_time = time.perf_counter()

        sanitized = self.validate_preferences(preferences).sanitized_preferences
        fallback_used = not sanitized.topics
        if fallback_used:
            weighted_topics = [WeightedTopic(topic, 1.0) for topic in self.config.fallback_topics]
        else:
            weighted_topics = self.calculate_topic_weights(sanitized.topics, interaction_history)

        query_text = self._build_query_text(weighted_topics, sanitized.preferred_sources)
        query_embedding = await self.embedding_provider.embed(query_text)

        processing_time = (time.perf_counter() - start_time) * 1000
        logger.debug(f"Converted preferences for user {preferences.user_id or '<anonymous>'} "
                     f"into query of {len(query_text)} chars (fallback={fallback_used})")

        return PreferenceQueryResult(
            query_text=query_text,
            query_embedding=query_embedding,
            weighted_topics=weighted_topics,
            fallback_used=fallback_used,
            processing_time=processing_time,
        )

    async def convert_batch_preferences_to_queries(self, preferences_list: List[UserPreferences]
                                                   ) -> List[PreferenceQueryResult]:
        return [await self.convert_preferences_to_query(preferences) for preferences in preferences_list]

    async def generate_fallback_query(self) -> PreferenceQueryResult:
        """Preference-independent query over the fallback topics."""
        start_time = time.perf_counter()
        query_text = ' '.join(self.config.fallback_topics)
        query_embedding = await self.embedding_provider.embed(query_text)

        return PreferenceQueryResult(
            query_text=query_text,
            query_embedding=query_embedding,
            weighted_topics=[WeightedTopic(topic, 1.0) for topic in self.config.fallback_topics],
            fallback_used=True,
            processing_time=(time.perf_counter() - start_time) * 1000,
        )

    def calculate_topic_weights(self, topics: List[str],
                                interaction_history: Optional[List[InteractionStats]] = None
                                ) -> List[WeightedTopic]:
        """
        Weight topics by positive feedback ratio.

        Without history every topic weighs 1.0. A topic with history weighs
        0.1 + 1.9 * positive/total, i.e. somewhere in [0.1, 2.0].
        """
        if not interaction_history:
            return [WeightedTopic(topic, 1.0) for topic in topics]

        history = {stats.item: stats for stats in interaction_history}
        weighted_topics = []
        for topic in topics:
            stats = history.get(topic)
            if stats and stats.total_interactions > 0:
                positive_ratio = stats.positive_interactions / stats.total_interactions
                weighted_topics.append(WeightedTopic(topic, MIN_TOPIC_WEIGHT + positive_ratio * TOPIC_WEIGHT_RANGE))
            else:
                weighted_topics.append(WeightedTopic(topic, 1.0))
        return weighted_topics

    def validate_preferences(self, preferences: UserPreferences) -> PreferenceValidation:
        """Return a sanitized copy of ``preferences`` and the issues found."""
        issues = []
        sanitized = preferences.copy()

        if not preferences.topics:
            issues.append("No topics specified, will use fallback")
            sanitized.topics = []
        else:
            sanitized.topics = _clean_terms(preferences.topics)
            if not sanitized.topics:
                issues.append("All topics were invalid, will use fallback")

        if preferences.tone not in TONES:
            issues.append(f'Invalid tone "{preferences.tone}", using default "{DEFAULT_TONE}"')
            sanitized.tone = DEFAULT_TONE

        if not isinstance(preferences.reading_time, (int, float)) or \
                not MIN_READING_TIME <= preferences.reading_time <= MAX_READING_TIME:
            issues.append(f"Invalid reading time {preferences.reading_time}, "
                          f"using default {DEFAULT_READING_TIME} minutes")
            sanitized.reading_time = DEFAULT_READING_TIME

        sanitized.excluded_sources = _clean_terms(preferences.excluded_sources)
        preferred_sources = _clean_terms(preferences.preferred_sources)
        overlapping = [source for source in preferred_sources if source in sanitized.excluded_sources]
        if overlapping:
            issues.append(f"Sources both preferred and excluded, treated as excluded: {', '.join(overlapping)}")
        sanitized.preferred_sources = [source for source in preferred_sources if source not in overlapping]

        return PreferenceValidation(is_valid=not issues, sanitized_preferences=sanitized, issues=issues)

    def _build_query_text(self, weighted_topics: List[WeightedTopic], preferred_sources: List[str]) -> str:
        query_parts = []
        for weighted in weighted_topics:
            repetitions = max(1, _round_half_up(weighted.weight * self.config.topic_weight * TOPIC_REPETITION_SCALE))
            query_parts.extend([weighted.topic] * repetitions)

        if preferred_sources:
            source_repetitions = _round_half_up(self.config.source_weight * SOURCE_REPETITION_SCALE)
            for _ in range(source_repetitions):
                query_parts.extend(preferred_sources)

        query_text = ' '.join(query_parts)
        max_length = self.config.max_query_length
        if len(query_text) > max_length:
            query_text = query_text[:max_length].strip()
            last_space = query_text.rfind(' ')
            if last_space > max_length * WORD_BOUNDARY_RATIO:
                query_text = query_text[:last_space]

        return query_text or ' '.join(self.config.fallback_topics)
