"""
Tone-aware summarization service.

This module provides summary generation bounded by a target reading time,
key point extraction, tone adaptation of existing summaries, consolidated
(multi-topic) summaries, and a local fallback summary that needs no provider.
"""

import json
import logging
import re
import uuid
from typing import Any, Dict, List, Optional

from ..config import SummarizationConfig
from ..exceptions import SummarizationError
from ..interfaces import TextGenerator
from ..models import (
    DEFAULT_READING_TIME,
    DEFAULT_TONE,
    ConsolidatedSummary,
    ConsolidationRequest,
    NewsArticle,
    Summary,
    SummaryRequest,
    ToneAdaptationRequest,
    ToneCharacteristics,
    normalize_reading_time,
    normalize_tone,
)
from .prompts import key_points_prompt, summary_prompt
from .reading_time import adjust_content_length, calculate_target_word_count, estimate_reading_time
from .tone_adapter import ToneAdapter
from .topic_consolidator import CODE_FENCE_PATTERN, TopicConsolidator

logger = logging.getLogger(__name__)

DEFAULT_KEY_POINT = "Key information extracted from the article"
FIRST_SENTENCE_PATTERN = re.compile(r'^(.+?[.!?])(?:\s|$)', re.DOTALL)


def combine_articles(articles: List[NewsArticle]) -> str:
    """Render articles as one prompt body."""
    if len(articles) == 1:
        return f"Title: {articles[0].headline}\n\nContent: {articles[0].content}"

    return '\n\n---\n\n'.join(
        f"Article {index} - {article.source}:\nTitle: {article.headline}\nContent: {article.content}"
        for index, article in enumerate(articles, start=1)
    )


def first_sentence(text: str) -> str:
    text = (text or '').strip()
    match = FIRST_SENTENCE_PATTERN.match(text)
    return match.group(1).strip() if match else text


def parse_key_points(response_text: str, max_points: int = 5) -> List[str]:
    """
    Read key points from a provider reply.

    A JSON array gives its non-empty entries; anything else is read line by
    line, skipping JSON artifacts. At most ``max_points`` points are kept and
    an empty result becomes one generic point.
    """
    text = CODE_FENCE_PATTERN.sub('', response_text or '').strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, list):
        points = [str(point).strip() for point in parsed if str(point).strip()]
        return points[:max_points] or [DEFAULT_KEY_POINT]

    lines = [
        line.strip() for line in text.splitlines()
        if line.strip() and not line.strip().startswith(('[', '{'))
    ]
    return lines[:max_points] or [DEFAULT_KEY_POINT]


class SummarizationService:
    """
    Generates and adapts summaries through the text-generation provider.

    Owns a ToneAdapter and a TopicConsolidator built on the same provider
    unless others are passed in.
    """

    def __init__(self, generator: TextGenerator, config: Optional[SummarizationConfig] = None,
                 tone_adapter: Optional[ToneAdapter] = None,
                 topic_consolidator: Optional[TopicConsolidator] = None):
        self.generator = generator
        self.config = config or SummarizationConfig()
        self.config.validate()
        self.tone_adapter = tone_adapter or ToneAdapter(generator, self.config)
        self.topic_consolidator = topic_consolidator or TopicConsolidator(generator, self.config)

    async def generate_summary(self, request: SummaryRequest) -> Summary:
        """
        Summarize ``request.articles`` in the requested tone and reading time.
        Unsupported tones and out-of-range reading times fall back to the defaults.

        Args:
            request: Articles, tone, max reading time and requesting user

        Returns:
            Summary whose content fits the reading-time word budget

        Raises:
            SummarizationError: If there are no articles or any provider call fails
        """
        if not request.articles:
            raise SummarizationError("No articles to summarize", code="NO_ARTICLES")

        tone = normalize_tone(request.tone)
        max_reading_time = normalize_reading_time(request.max_reading_time)
        combined_content = combine_articles(request.articles)
        system_prompt, user_prompt = summary_prompt(
            tone,
            combined_content,
            max_reading_time,
            calculate_target_word_count(max_reading_time),
        )

        try:
            summary_content = await self.generator.complete(system_prompt, user_prompt)
            key_points = await self._extract_key_points(combined_content)
        except Exception as e:
            logger.error(f"Summary generation failed for user {request.user_id}: {e}")
            raise SummarizationError(f"Failed to generate summary: {e}", cause=e,
                                     code="SUMMARY_FAILED") from e

        summary_content = adjust_content_length(summary_content.strip(), max_reading_time)
        logger.info(f"Generated {tone} summary of {len(request.articles)} articles "
                    f"for user {request.user_id}")

        return Summary(
            id=str(uuid.uuid4()),
            content=summary_content,
            key_points=key_points,
            source_articles=[article.id for article in request.articles],
            estimated_reading_time=estimate_reading_time(summary_content),
            tone=tone,
        )

    async def generate_single_article_summary(self, article: NewsArticle, tone: str = DEFAULT_TONE,
                                              max_reading_time: int = DEFAULT_READING_TIME) -> Summary:
        return await self.generate_summary(SummaryRequest(
            articles=[article],
            tone=tone,
            max_reading_time=max_reading_time,
            user_id="system",
        ))

    async def adapt_summary_tone(self, summary: Summary, target_tone: str,
                                 preserve_length: bool = True) -> Summary:
        """Rewrite a summary (content and key points) into ``target_tone`` under a new id."""
        adaptation = await self.tone_adapter.adapt_tone(ToneAdaptationRequest(
            content=summary.content,
            source_tone=summary.tone,
            target_tone=target_tone,
            preserve_length=preserve_length,
        ))

        key_points = summary.key_points
        if key_points:
            results = await self.tone_adapter.batch_adapt_tone(
                key_points, summary.tone, target_tone, preserve_length=True
            )
            key_points = [result.adapted_content for result in results]

        return Summary(
            id=str(uuid.uuid4()),
            content=adaptation.adapted_content,
            key_points=key_points,
            source_articles=list(summary.source_articles),
            estimated_reading_time=estimate_reading_time(adaptation.adapted_content),
            tone=target_tone,
        )

    async def validate_summary_tone(self, summary: Summary) -> float:
        return await self.tone_adapter.validate_tone_consistency(summary.content, summary.tone)

    async def generate_consolidated_summary(self, request: ConsolidationRequest) -> ConsolidatedSummary:
        return await self.topic_consolidator.consolidate_topics(request)

    async def generate_smart_summary(self, articles: List[NewsArticle], tone: str = DEFAULT_TONE,
                                     max_reading_time: int = DEFAULT_READING_TIME,
                                     user_id: str = "system",
                                     similarity_threshold: Optional[float] = None) -> ConsolidatedSummary:
        """Deduplicate, group and consolidate ``articles`` in one call."""
        if similarity_threshold is None:
            similarity_threshold = self.config.default_similarity_threshold
        return await self.generate_consolidated_summary(ConsolidationRequest(
            articles=articles,
            tone=tone,
            max_reading_time=max_reading_time,
            user_id=user_id,
            similarity_threshold=similarity_threshold,
        ))

    def get_consolidation_stats(self, summary: ConsolidatedSummary) -> Dict[str, Any]:
        return self.topic_consolidator.get_consolidation_stats(summary)

    def get_tone_characteristics(self, tone: str) -> ToneCharacteristics:
        return self.tone_adapter.get_tone_characteristics(tone)

    def get_fallback_summary(self, articles: List[NewsArticle], tone: str) -> Summary:
        """
        Build a summary locally from headlines and first sentences.

        Used when the provider is unavailable; makes no provider call.
        """
        content = '\n\n'.join(
            f"{article.headline}\n{first_sentence(article.content)}".strip() for article in articles
        )

        key_points = ["Original article content (AI summarization unavailable)"]
        if articles:
            key_points.append(f"Source: {articles[0].source}")
            key_points.append(f"Published: {articles[0].published_at.date().isoformat()}")

        return Summary(
            id=str(uuid.uuid4()),
            content=content,
            key_points=key_points,
            source_articles=[article.id for article in articles],
            estimated_reading_time=estimate_reading_time(content),
            tone=tone,
        )

    async def _extract_key_points(self, content: str) -> List[str]:
        system_prompt, user_prompt = key_points_prompt(content)
        response_text = await self.generator.complete(system_prompt, user_prompt)
        return parse_key_points(response_text, self.config.max_key_points)
