"""
Online preference learning from implicit feedback.

Records reader interactions (read more, like, share, hide), derives per
category and per source statistics with activity trends, and turns them
into preference updates gated by a confidence score.
"""

import logging
import math
from collections import Counter, OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..config import InteractionLearnerConfig
from ..exceptions import InteractionLearnerError
from ..interfaces import InteractionStore
from ..models import (
    TREND_DECREASING,
    TREND_INCREASING,
    TREND_STABLE,
    InteractionRecord,
    InteractionStats,
    LearningInsights,
    PreferenceChange,
    PreferenceUpdateResult,
    UserInteraction,
    UserInteractionStats,
    UserPreferences,
    utc_now,
)

logger = logging.getLogger(__name__)

TREND_UP_RATIO = 1.2
TREND_DOWN_RATIO = 0.8
MIN_DENSITY_SPAN_HOURS = 1.0
RECENT_WINDOW_DAYS = 7
TOP_STATS_LIMIT = 10
MIN_ITEM_INTERACTIONS = 3
MIN_EMERGING_TAG_COUNT = 2
MAX_EMERGING_TOPICS = 5
MAX_DECLINING_SOURCES = 5
DECLINING_MAX_RATIO = 0.3
PREFERRED_SOURCE_MIN_RATIO = 0.7
PREFERRED_SOURCE_SLOTS = 3
RECOMMEND_PREFERRED_MIN_RATIO = 0.6
RECOMMEND_PREFERRED_LIMIT = 5
RECOMMEND_EXCLUDED_MAX_RATIO = 0.2
RECOMMEND_EXCLUDED_LIMIT = 3
TOP_ACTIONS_LIMIT = 5


def _half_density(timestamps: List[datetime]) -> float:
    span_hours = (max(timestamps) - min(timestamps)).total_seconds() / 3600
    return len(timestamps) / max(span_hours, MIN_DENSITY_SPAN_HOURS)


def compare_activity(recent: float, older: float) -> str:
    """Classify ``recent`` against ``older`` with a 20% band either way."""
    if recent > older * TREND_UP_RATIO:
        return TREND_INCREASING
    if recent < older * TREND_DOWN_RATIO:
        return TREND_DECREASING
    return TREND_STABLE


def calculate_trend(timestamps: List[datetime]) -> str:
    """
    Compare interaction density of the newer and older half of ``timestamps``.

    Timestamps are ordered newest first and split at the midpoint index; each
    half's density is its count over its time span, with spans shorter than
    an hour counted as one hour.
    """
    if len(timestamps) < 2:
        return TREND_STABLE

    ordered = sorted(timestamps, reverse=True)
    midpoint = len(ordered) // 2
    return compare_activity(_half_density(ordered[:midpoint]), _half_density(ordered[midpoint:]))


class InteractionLearner:
    """
    Learns preference updates from the interaction log.

    Features:
    - Append with retention pruning per user
    - Category and source statistics ranked by ratio x log volume
    - Emerging topics from recent positive interactions
    - Declining sources from falling, mostly negative activity
    - Confidence-gated preference updates that keep preferred and
      excluded sources disjoint
    """

    def __init__(self, store: InteractionStore, config: Optional[InteractionLearnerConfig] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.config = config or InteractionLearnerConfig()
        self.config.validate()
        self.clock = clock

    async def track_interaction(self, interaction: UserInteraction) -> None:
        """
        Append ``interaction`` to the log, then prune the user's log to the retention limit.

        Raises:
            InteractionLearnerError: If the append fails. Pruning failures are only logged.
        """
        try:
            await self.store.insert_interaction(interaction)
        except Exception as e:
            logger.error(f"Failed to track interaction for user {interaction.user_id}: {e}")
            raise InteractionLearnerError(f"Failed to track interaction: {e}", cause=e,
                                          code="TRACK_FAILED") from e

        try:
            await self._cleanup_old_interactions(interaction.user_id)
        except Exception as e:
            logger.warning(f"Failed to cleanup old interactions for user {interaction.user_id}: {e}")

    async def analyze_interactions(self, user_id: str) -> LearningInsights:
        """
        Derive learning insights from the user's most recent interactions.

        Fewer than ``min_interactions_for_learning`` records yield empty,
        zero-confidence insights.
        """
        interactions = await self._fetch(user_id, self.config.max_interaction_history)

        if len(interactions) < self.config.min_interactions_for_learning:
            logger.debug(f"User {user_id} has {len(interactions)} interactions, below learning floor")
            return LearningInsights(user_id=user_id, last_analyzed=self.clock())

        category_stats = (
            self._item_stats(interactions, lambda record: record.category)
            if self.config.category_learning_enabled else []
        )
        source_stats = self._item_stats(interactions, lambda record: record.source)
        emerging_topics = self._emerging_topics(interactions)

        insights = LearningInsights(
            user_id=user_id,
            total_interactions=len(interactions),
            learning_confidence=self.calculate_learning_confidence(len(interactions)),
            top_categories=category_stats[:TOP_STATS_LIMIT],
            top_sources=source_stats[:TOP_STATS_LIMIT],
            emerging_topics=emerging_topics,
            declining_sources=self._declining_items(source_stats),
            recommended_preference_updates=self._recommendations(source_stats, emerging_topics),
            last_analyzed=self.clock(),
        )
        logger.info(f"Analyzed {insights.total_interactions} interactions for user {user_id} "
                    f"(confidence {insights.learning_confidence})")
        return insights

    async def update_preferences_from_interactions(self, user_id: str,
                                                   current_preferences: UserPreferences) -> PreferenceUpdateResult:
        """
        Apply learned changes to a copy of ``current_preferences``.

        Nothing changes when the learning confidence is below
        ``min_confidence_for_update``. The caller decides whether to persist
        the returned preferences.
        """
        insights = await self.analyze_interactions(user_id)
        confidence = insights.learning_confidence

        if confidence < self.config.min_confidence_for_update:
            return PreferenceUpdateResult(
                updated_preferences=current_preferences,
                changes=[],
                learning_insights=insights,
            )

        updated = current_preferences.copy()
        changes: List[PreferenceChange] = []

        if self.config.topic_learning_enabled and insights.emerging_topics:
            new_topics = self._merge_topics(current_preferences.topics, insights.emerging_topics, confidence)
            if new_topics != current_preferences.topics:
                changes.append(PreferenceChange(
                    field="topics",
                    old_value=list(current_preferences.topics),
                    new_value=new_topics,
                    reason="Added emerging topics based on interaction patterns",
                    confidence=confidence,
                ))
                updated.topics = new_topics

        if self.config.source_learning_enabled:
            new_excluded = current_preferences.excluded_sources
            if insights.declining_sources:
                new_excluded = self._update_excluded_sources(
                    current_preferences.excluded_sources, insights.declining_sources, confidence
                )

            new_preferred = self._update_preferred_sources(
                current_preferences.preferred_sources, insights.top_sources, confidence, set(new_excluded)
            )
            if new_preferred != current_preferences.preferred_sources:
                changes.append(PreferenceChange(
                    field="preferred_sources",
                    old_value=list(current_preferences.preferred_sources),
                    new_value=new_preferred,
                    reason="Updated based on positive source interactions",
                    confidence=confidence,
                ))
                updated.preferred_sources = new_preferred

            if new_excluded != current_preferences.excluded_sources:
                changes.append(PreferenceChange(
                    field="excluded_sources",
                    old_value=list(current_preferences.excluded_sources),
                    new_value=new_excluded,
                    reason="Added sources with consistently negative interactions",
                    confidence=confidence,
                ))
                updated.excluded_sources = new_excluded

        updated.last_updated = self.clock()
        for change in changes:
            logger.info(f"Preference change for user {user_id}: {change.field} ({change.reason})")

        return PreferenceUpdateResult(updated_preferences=updated, changes=changes, learning_insights=insights)

    async def get_user_interaction_stats(self, user_id: str) -> UserInteractionStats:
        """Totals, last-7-day count, top actions and week-over-week activity trend."""
        interactions = await self._fetch(user_id)
        if not interactions:
            return UserInteractionStats()

        now = self.clock()
        week_ago = now - timedelta(days=RECENT_WINDOW_DAYS)
        two_weeks_ago = now - timedelta(days=2 * RECENT_WINDOW_DAYS)

        recent = sum(1 for record in interactions if record.timestamp >= week_ago)
        previous_week = sum(1 for record in interactions if two_weeks_ago <= record.timestamp < week_ago)

        action_counts = Counter(str(getattr(record.action, "value", record.action)) for record in interactions)

        return UserInteractionStats(
            total_interactions=len(interactions),
            recent_interactions=recent,
            top_actions=[{'action': action, 'count': count}
                         for action, count in action_counts.most_common(TOP_ACTIONS_LIMIT)],
            activity_trend=compare_activity(recent, previous_week),
        )

    async def reset_user_learning(self, user_id: str) -> None:
        """Delete the user's entire interaction log. Irreversible."""
        try:
            await self.store.delete_user_interactions(user_id)
        except Exception as e:
            logger.error(f"Failed to reset learning data for user {user_id}: {e}")
            raise InteractionLearnerError(f"Failed to reset learning data: {e}", cause=e,
                                          code="RESET_FAILED") from e
        logger.info(f"Reset learning data for user {user_id}")

    def calculate_learning_confidence(self, total_interactions: int) -> float:
        """min(ln(total/min + 1) / ln(10), 1), rounded to 2 decimals; 0 below the floor."""
        floor = self.config.min_interactions_for_learning
        if total_interactions < floor:
            return 0.0
        confidence = min(math.log(total_interactions / floor + 1) / math.log(10), 1.0)
        return round(confidence, 2)

    async def _fetch(self, user_id: str, limit: Optional[int] = None) -> List[InteractionRecord]:
        try:
            return await self.store.fetch_interactions(user_id, limit)
        except Exception as e:
            logger.error(f"Failed to fetch interactions for user {user_id}: {e}")
            raise InteractionLearnerError(f"Failed to fetch interactions: {e}", cause=e,
                                          code="FETCH_FAILED") from e

    async def _cleanup_old_interactions(self, user_id: str) -> None:
        # Only the oldest kept record and the one after it are needed
        limit = self.config.max_interaction_history
        boundary = await self.store.fetch_interactions(user_id, limit=2, offset=limit - 1)
        if len(boundary) < 2:
            return

        cutoff = boundary[0].timestamp
        await self.store.delete_interactions_before(user_id, cutoff)
        logger.debug(f"Pruned interactions older than {cutoff.isoformat()} for user {user_id}")

    def _item_stats(self, interactions: List[InteractionRecord],
                    extract: Callable[[InteractionRecord], Optional[str]]) -> List[InteractionStats]:
        positive_actions = set(self.config.positive_actions)
        negative_actions = set(self.config.negative_actions)

        grouped: Dict[str, Dict[str, object]] = OrderedDict()
        for record in interactions:
            item = extract(record)
            if not item:
                continue
            stats = grouped.setdefault(item, {'positive': 0, 'negative': 0, 'timestamps': []})
            stats['timestamps'].append(record.timestamp)
            action = str(getattr(record.action, "value", record.action))
            if action in positive_actions:
                stats['positive'] += 1
            elif action in negative_actions:
                stats['negative'] += 1

        results = []
        for item, stats in grouped.items():
            timestamps = stats['timestamps']
            total = len(timestamps)
            results.append(InteractionStats(
                item=item,
                total_interactions=total,
                positive_interactions=stats['positive'],
                negative_interactions=stats['negative'],
                positive_ratio=stats['positive'] / total,
                last_interaction=max(timestamps),
                trend=calculate_trend(timestamps),
            ))

        results.sort(key=lambda stat: stat.positive_ratio * math.log(stat.total_interactions + 1), reverse=True)
        return results

    def _emerging_topics(self, interactions: List[InteractionRecord]) -> List[str]:
        recent_threshold = self.clock() - timedelta(days=RECENT_WINDOW_DAYS)
        positive_actions = set(self.config.positive_actions)

        tag_counts = Counter(
            tag
            for record in interactions
            if record.timestamp >= recent_threshold
            and str(getattr(record.action, "value", record.action)) in positive_actions
            for tag in record.tags
        )
        return [tag for tag, count in tag_counts.most_common()
                if count >= MIN_EMERGING_TAG_COUNT][:MAX_EMERGING_TOPICS]

    @staticmethod
    def _declining_items(item_stats: List[InteractionStats]) -> List[str]:
        return [
            stat.item for stat in item_stats
            if stat.trend == TREND_DECREASING
            and stat.positive_ratio < DECLINING_MAX_RATIO
            and stat.total_interactions >= MIN_ITEM_INTERACTIONS
        ][:MAX_DECLINING_SOURCES]

    @staticmethod
    def _recommendations(source_stats: List[InteractionStats], emerging_topics: List[str]) -> Dict[str, List[str]]:
        recommendations: Dict[str, List[str]] = {}
        if emerging_topics:
            recommendations['topics'] = list(emerging_topics)

        preferred = [stat.item for stat in source_stats
                     if stat.positive_ratio > RECOMMEND_PREFERRED_MIN_RATIO
                     and stat.total_interactions >= MIN_ITEM_INTERACTIONS][:RECOMMEND_PREFERRED_LIMIT]
        if preferred:
            recommendations['preferred_sources'] = preferred

        excluded = [stat.item for stat in source_stats
                    if stat.positive_ratio < RECOMMEND_EXCLUDED_MAX_RATIO
                    and stat.total_interactions >= MIN_ITEM_INTERACTIONS][:RECOMMEND_EXCLUDED_LIMIT]
        if excluded:
            recommendations['excluded_sources'] = excluded

        return recommendations

    def _merge_topics(self, current_topics: List[str], emerging_topics: List[str], confidence: float) -> List[str]:
        merged = list(current_topics)
        for topic in emerging_topics[:math.floor(len(emerging_topics) * confidence)]:
            if topic not in merged:
                merged.append(topic)
        return merged[:self.config.max_topics]

    def _update_preferred_sources(self, current_sources: List[str], source_stats: List[InteractionStats],
                                  confidence: float, excluded: set) -> List[str]:
        preferred = [source for source in current_sources if source not in excluded]
        good_sources = [stat for stat in source_stats
                        if stat.positive_ratio > PREFERRED_SOURCE_MIN_RATIO
                        and stat.total_interactions >= MIN_ITEM_INTERACTIONS
                        and stat.item not in excluded]
        for stat in good_sources[:math.floor(PREFERRED_SOURCE_SLOTS * confidence)]:
            if stat.item not in preferred:
                preferred.append(stat.item)
        return preferred[:self.config.max_preferred_sources]

    def _update_excluded_sources(self, current_excluded: List[str], declining_sources: List[str],
                                 confidence: float) -> List[str]:
        excluded = list(current_excluded)
        for source in declining_sources[:math.floor(len(declining_sources) * confidence)]:
            if source not in excluded:
                excluded.append(source)
        return excluded[:self.config.max_excluded_sources]
