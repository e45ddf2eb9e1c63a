"""
Topic consolidation for article sets.

This module collapses duplicate articles, groups the remainder into topic
clusters with the text-generation provider (falling back to grouping by
category), and writes one consolidated narrative over all groups.
"""

import hashlib
import json
import logging
import re
import uuid
from collections import Counter, OrderedDict
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, ValidationError

from ..config import SummarizationConfig
from ..exceptions import SummarizationError
from ..interfaces import TextGenerator
from ..models import (
    ConsolidatedSummary,
    ConsolidationRequest,
    DeduplicationResult,
    NewsArticle,
    TopicGroup,
    normalize_reading_time,
    normalize_tone,
)
from .prompts import consolidation_prompt, topic_grouping_prompt
from .reading_time import adjust_content_length, calculate_target_word_count, estimate_reading_time

logger = logging.getLogger(__name__)

MAX_TOPIC_LENGTH = 50
MAX_KEYWORDS = 5
MIN_KEYWORD_LENGTH = 5

STOP_WORDS = {
    'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'this', 'that', 'these', 'those', 'is', 'are', 'was', 'were', 'been', 'have',
    'has', 'had', 'will', 'would', 'could', 'should', 'may', 'might', 'can',
    'said', 'says', 'also', 'more', 'most', 'some', 'many', 'much', 'very',
    'their', 'there', 'which', 'about', 'after', 'other',
}

CODE_FENCE_PATTERN = re.compile(r'```(?:json)?\s*|\s*```')


class TopicGroupProposal(BaseModel):
    """One group as proposed by the provider. Indices are 1-based."""
    topic: str
    article_indices: List[int] = Field(alias="articleIndices")
    similarity: float
    keywords: List[str] = Field(default_factory=list)


class TopicGroupingResponse(BaseModel):
    groups: List[TopicGroupProposal]


def normalize_content(content: str) -> str:
    """Lower-case, punctuation to spaces, whitespace collapsed."""
    text = re.sub(r'[^\w\s]', ' ', (content or '').lower())
    return re.sub(r'\s+', ' ', text).strip()


def content_hash(content: str) -> str:
    return hashlib.sha256(normalize_content(content).encode('utf-8')).hexdigest()


def extract_keywords(content: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """Most frequent words longer than four characters, stop words excluded."""
    words = [
        word for word in normalize_content(content).split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS
    ]
    return [word for word, _ in Counter(words).most_common(limit)]


def format_category_name(category: str) -> str:
    if not category:
        return category
    return category[0].upper() + re.sub(r'[-_]', ' ', category[1:])


def parse_grouping_response(response_text: str) -> TopicGroupingResponse:
    """
    Parse the provider's grouping reply into a typed result.

    Raises:
        ValueError: If the reply is not JSON of the expected shape
    """
    text = CODE_FENCE_PATTERN.sub('', response_text or '').strip()
    try:
        return TopicGroupingResponse.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Malformed grouping response: {e}") from e


class TopicConsolidator:
    """
    Deduplicates articles, clusters them by topic and writes one narrative.

    Features:
    - Content-hash deduplication (order preserving)
    - Provider-proposed topic groups with a similarity floor
    - Deterministic category grouping when the provider fails
    - Narrative bounded by the requested reading time
    """

    def __init__(self, generator: TextGenerator, config: Optional[SummarizationConfig] = None):
        self.generator = generator
        self.config = config or SummarizationConfig()
        self.config.validate()

    async def consolidate_topics(self, request: ConsolidationRequest) -> ConsolidatedSummary:
        """
        Consolidate ``request.articles`` into a single summary.

        Args:
            request: Articles, tone, reading time and optional similarity threshold

        Returns:
            ConsolidatedSummary over the unique articles

        Raises:
            SummarizationError: If no unique articles remain or the narrative call fails
        """
        dedup = self.remove_duplicates(request.articles)
        if not dedup.unique_articles:
            raise SummarizationError("No unique articles to consolidate", code="NO_ARTICLES")

        threshold = (
            request.similarity_threshold if request.similarity_threshold is not None
            else self.config.default_similarity_threshold
        )
        topic_groups = await self.group_articles_by_topic(dedup.unique_articles, threshold)
        logger.info(f"Consolidating {len(dedup.unique_articles)} articles in {len(topic_groups)} topic groups "
                    f"({dedup.duplicates_removed} duplicates removed)")

        tone = normalize_tone(request.tone)
        content = await self._generate_consolidated_content(
            topic_groups, tone, normalize_reading_time(request.max_reading_time))

        return ConsolidatedSummary(
            id=str(uuid.uuid4()),
            content=content,
            key_points=self._consolidated_key_points(topic_groups),
            source_articles=[article.id for article in dedup.unique_articles],
            estimated_reading_time=estimate_reading_time(content),
            tone=tone,
            topic_groups=topic_groups,
            consolidated_article_count=len(dedup.unique_articles),
            duplicates_removed=dedup.duplicates_removed,
        )

    def remove_duplicates(self, articles: List[NewsArticle]) -> DeduplicationResult:
        """Keep the first article of every content hash."""
        seen: Set[str] = set()
        unique_articles = []
        for article in articles:
            digest = content_hash(article.content)
            if digest in seen:
                logger.debug(f"Dropping duplicate article {article.id}")
                continue
            seen.add(digest)
            unique_articles.append(article)

        return DeduplicationResult(
            unique_articles=unique_articles,
            duplicates_removed=len(articles) - len(unique_articles),
        )

    async def group_articles_by_topic(self, articles: List[NewsArticle],
                                      similarity_threshold: Optional[float] = None) -> List[TopicGroup]:
        """
        Group articles by topic.

        A single article is its own group. Groups the provider reports below
        ``similarity_threshold`` are rejected and their articles become
        single-article groups. Any provider or parse failure falls back to
        grouping by category.
        """
        if similarity_threshold is None:
            similarity_threshold = self.config.default_similarity_threshold

        if len(articles) <= 1:
            return [self._single_article_group(article) for article in articles]

        system_prompt, user_prompt = topic_grouping_prompt(self._format_articles_for_grouping(articles))
        try:
            response_text = await self.generator.complete(system_prompt, user_prompt)
            proposal = parse_grouping_response(response_text)
        except Exception as e:
            logger.warning(f"Topic grouping failed, falling back to category grouping: {e}")
            return self._group_by_category(articles)

        return self._build_groups(proposal, articles, similarity_threshold)

    def get_consolidation_stats(self, summary: ConsolidatedSummary) -> Dict[str, Any]:
        group_count = len(summary.topic_groups)
        return {
            'total_articles': summary.consolidated_article_count + summary.duplicates_removed,
            'unique_articles': summary.consolidated_article_count,
            'duplicates_removed': summary.duplicates_removed,
            'topic_groups': group_count,
            'average_group_size': summary.consolidated_article_count / group_count if group_count else 0.0,
        }

    def _build_groups(self, proposal: TopicGroupingResponse, articles: List[NewsArticle],
                      similarity_threshold: float) -> List[TopicGroup]:
        groups = []
        used_indices: Set[int] = set()

        for proposed in proposal.groups:
            if proposed.similarity < similarity_threshold:
                logger.debug(f"Rejecting group '{proposed.topic}' (similarity {proposed.similarity:.2f})")
                continue

            members = []
            for index in proposed.article_indices:
                if 1 <= index <= len(articles) and index not in used_indices:
                    used_indices.add(index)
                    members.append(articles[index - 1])

            if members:
                groups.append(TopicGroup(
                    topic=proposed.topic,
                    articles=members,
                    similarity=proposed.similarity,
                    keywords=list(proposed.keywords),
                ))

        for index, article in enumerate(articles, start=1):
            if index not in used_indices:
                groups.append(self._single_article_group(article))

        return groups

    def _single_article_group(self, article: NewsArticle) -> TopicGroup:
        headline = article.headline
        topic = headline[:MAX_TOPIC_LENGTH] + '...' if len(headline) > MAX_TOPIC_LENGTH else headline
        return TopicGroup(
            topic=topic,
            articles=[article],
            similarity=1.0,
            keywords=extract_keywords(article.content),
        )

    def _group_by_category(self, articles: List[NewsArticle]) -> List[TopicGroup]:
        by_category: Dict[str, List[NewsArticle]] = OrderedDict()
        for article in articles:
            by_category.setdefault(article.category or 'general', []).append(article)

        return [
            TopicGroup(
                topic=format_category_name(category),
                articles=members,
                similarity=self.config.category_fallback_similarity,
                keywords=extract_keywords(' '.join(article.content for article in members)),
            )
            for category, members in by_category.items()
        ]

    def _format_articles_for_grouping(self, articles: List[NewsArticle]) -> str:
        excerpt_chars = self.config.article_excerpt_chars
        return '\n\n'.join(
            f"Article {index}:\nTitle: {article.headline}\nCategory: {article.category}\n"
            f"Content: {article.content[:excerpt_chars]}..."
            for index, article in enumerate(articles, start=1)
        )

    async def _generate_consolidated_content(self, topic_groups: List[TopicGroup], tone: str,
                                             max_reading_time: int) -> str:
        sections = []
        for index, group in enumerate(topic_groups, start=1):
            articles_text = '\n\n'.join(
                f"Title: {article.headline}\nContent: {article.content}" for article in group.articles
            )
            sections.append(
                f"Topic {index}: {group.topic}\nKeywords: {', '.join(group.keywords)}\n\nArticles:\n{articles_text}"
            )

        system_prompt, user_prompt = consolidation_prompt(
            '\n\n---\n\n'.join(sections),
            max_reading_time,
            calculate_target_word_count(max_reading_time),
            tone,
        )
        try:
            content = await self.generator.complete(system_prompt, user_prompt)
        except Exception as e:
            logger.error(f"Consolidated summary generation failed: {e}")
            raise SummarizationError(f"Failed to consolidate topics: {e}", cause=e,
                                     code="CONSOLIDATION_FAILED") from e

        return adjust_content_length(content.strip(), max_reading_time)

    def _consolidated_key_points(self, topic_groups: List[TopicGroup]) -> List[str]:
        key_points = []
        for group in topic_groups:
            key_points.append(f"{group.topic}: {len(group.articles)} related articles")
            if group.keywords:
                key_points.append(f"Key themes: {', '.join(group.keywords[:3])}")
        return key_points[:self.config.max_consolidated_key_points]
