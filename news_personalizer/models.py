"""
Data models for the personalized news feed core.

This module defines the structures that flow through the personalization
pipeline: user preferences and interactions, articles and their embedded
chunks, search results with decomposed boost factors, topic groups and
summaries, and the derived learning insights.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid


TONES = ("formal", "casual", "fun")
DEFAULT_TONE = "casual"
DEFAULT_READING_TIME = 5
MIN_READING_TIME = 1
MAX_READING_TIME = 15

TREND_INCREASING = "increasing"
TREND_DECREASING = "decreasing"
TREND_STABLE = "stable"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp (or pass a datetime through), assuming UTC when naive."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_tone(tone: Any) -> str:
    """``tone`` when it is a supported tone, otherwise the default."""
    return tone if tone in TONES else DEFAULT_TONE


def normalize_reading_time(minutes: Any) -> int:
    """``minutes`` when within the supported range, otherwise the default."""
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
        return DEFAULT_READING_TIME
    if not MIN_READING_TIME <= minutes <= MAX_READING_TIME:
        return DEFAULT_READING_TIME
    return int(minutes)


def parse_embedding(value: Any) -> Optional[List[float]]:
    """
    Read an embedding as returned by the datastore.

    pgvector columns come back over REST as text such as ``"[0.1,0.2]"``;
    sequences are converted element-wise. Missing or empty values yield None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip().strip("[]")
        if not text:
            return None
        return [float(part) for part in text.split(",")]
    return [float(part) for part in value]


class InteractionAction(str, Enum):
    """Implicit feedback actions a reader can take on an article."""
    READ_MORE = "read_more"
    LIKE = "like"
    SHARE = "share"
    HIDE = "hide"


@dataclass
class UserPreferences:
    """
    Declared interests and reading settings of one user.

    Attributes:
        user_id: Owner of the record
        topics: Ordered list of declared interests
        tone: One of formal/casual/fun
        reading_time: Target reading time in minutes (1-15)
        preferred_sources: Sources to favour
        excluded_sources: Sources to drop; never overlaps preferred_sources
        last_updated: When the record was last written
    """
    user_id: str = ""
    topics: List[str] = field(default_factory=list)
    tone: str = DEFAULT_TONE
    reading_time: int = DEFAULT_READING_TIME
    preferred_sources: List[str] = field(default_factory=list)
    excluded_sources: List[str] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utc_now)

    def copy(self, **changes) -> "UserPreferences":
        """Return a copy with list fields detached from this instance."""
        base = replace(
            self,
            topics=list(self.topics),
            preferred_sources=list(self.preferred_sources),
            excluded_sources=list(self.excluded_sources),
        )
        return replace(base, **changes) if changes else base

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "topics": self.topics,
            "tone": self.tone,
            "reading_time": self.reading_time,
            "preferred_sources": self.preferred_sources,
            "excluded_sources": self.excluded_sources,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserPreferences":
        return cls(
            user_id=data.get("user_id", ""),
            topics=list(data.get("topics") or []),
            tone=data.get("tone", DEFAULT_TONE),
            reading_time=int(data.get("reading_time", DEFAULT_READING_TIME)),
            preferred_sources=list(data.get("preferred_sources") or []),
            excluded_sources=list(data.get("excluded_sources") or []),
            last_updated=parse_timestamp(data["last_updated"]) if data.get("last_updated") else utc_now(),
        )


@dataclass(frozen=True)
class UserInteraction:
    """A single implicit feedback event. Immutable once recorded."""
    user_id: str
    article_id: str
    action: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "article_id": self.article_id,
            "action": str(getattr(self.action, "value", self.action)),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class InteractionRecord:
    """An interaction joined with the category, source and tags of its article."""
    user_id: str
    article_id: str
    action: str
    timestamp: datetime
    category: Optional[str] = None
    source: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class NewsArticle:
    """An ingested article. Consumed read-only by this core."""
    id: str
    headline: str
    content: str
    source: str
    category: str
    published_at: datetime
    url: str = ""
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "headline": self.headline,
            "content": self.content,
            "source": self.source,
            "category": self.category,
            "published_at": self.published_at.isoformat(),
            "url": self.url,
            "tags": self.tags,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsArticle":
        return cls(
            id=str(data["id"]),
            headline=data.get("headline", ""),
            content=data.get("content", ""),
            source=data.get("source", ""),
            category=data.get("category", ""),
            published_at=parse_timestamp(data.get("published_at") or utc_now()),
            url=data.get("url", ""),
            tags=list(data.get("tags") or []),
        )


@dataclass(frozen=True)
class ChunkMetadata:
    """Metadata needed to filter and boost a chunk."""
    source: str
    category: str
    published_at: datetime
    chunk_index: int = 0
    word_count: int = 0


@dataclass(frozen=True)
class TextChunk:
    """
    An embedded unit of article text.

    Attributes:
        id: Chunk identifier
        article_id: Article the chunk was cut from
        content: Chunk text
        metadata: Source/category/publish time of the article
        embedding: Embedding vector, when the index returns it
    """
    id: str
    article_id: str
    content: str
    metadata: ChunkMetadata
    embedding: Optional[List[float]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextChunk":
        metadata = data.get("metadata") or {}
        return cls(
            id=str(data["id"]),
            article_id=str(data.get("article_id", "")),
            content=data.get("content", ""),
            metadata=ChunkMetadata(
                source=metadata.get("source", ""),
                category=metadata.get("category", ""),
                published_at=parse_timestamp(metadata.get("published_at") or utc_now()),
                chunk_index=int(metadata.get("chunk_index", 0)),
                word_count=int(metadata.get("word_count", 0)),
            ),
            embedding=parse_embedding(data.get("embedding")),
        )


@dataclass
class DateRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError("DateRange start must be before or equal to end")


@dataclass
class SearchFilters:
    """Filters passed to the vector index."""
    categories: Optional[List[str]] = None
    sources: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    min_relevance_score: Optional[float] = None

    def merged_with(self, other: Optional["SearchFilters"]) -> "SearchFilters":
        """Return a copy where every field set on ``other`` overrides this one."""
        if other is None:
            return replace(self)
        return SearchFilters(
            categories=other.categories if other.categories is not None else self.categories,
            sources=other.sources if other.sources is not None else self.sources,
            date_range=other.date_range if other.date_range is not None else self.date_range,
            min_relevance_score=(
                other.min_relevance_score if other.min_relevance_score is not None
                else self.min_relevance_score
            ),
        )


@dataclass
class SearchResult:
    chunk: TextChunk
    relevance_score: float


@dataclass
class EnhancedSearchResult(SearchResult):
    """A search result with its decomposed, multiplicative boost factors."""
    base_relevance_score: float = 0.0
    category_boost: float = 1.0
    source_boost: float = 1.0
    recency_boost: float = 1.0
    final_score: float = 0.0
    matched_preferences: List[str] = field(default_factory=list)


@dataclass
class WeightedTopic:
    topic: str
    weight: float


@dataclass
class PreferenceQueryResult:
    query_text: str
    query_embedding: List[float]
    weighted_topics: List[WeightedTopic]
    fallback_used: bool
    processing_time: float  # milliseconds


@dataclass
class PreferenceValidation:
    is_valid: bool
    sanitized_preferences: UserPreferences
    issues: List[str] = field(default_factory=list)


@dataclass
class SearchMetrics:
    """Per-call timings and result statistics, used for offline tuning."""
    query_processing_time: float = 0.0
    vector_search_time: float = 0.0
    scoring_time: float = 0.0
    total_time: float = 0.0
    results_found: int = 0
    results_after_filtering: int = 0
    fallback_used: bool = False
    average_relevance_score: float = 0.0
    top_categories: List[Dict[str, Any]] = field(default_factory=list)
    top_sources: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class SearchResponse:
    results: List[EnhancedSearchResult]
    metrics: SearchMetrics


@dataclass
class SimilarArticlesResponse:
    results: List[SearchResult]
    vector_search_time: float
    results_found: int


@dataclass
class TrendingTopic:
    topic: str
    score: float
    article_count: int


@dataclass
class TopicGroup:
    """A cluster of articles judged to cover the same story."""
    topic: str
    articles: List[NewsArticle]
    similarity: float
    keywords: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Summary:
    id: str
    content: str
    key_points: List[str]
    source_articles: List[str]
    estimated_reading_time: int
    tone: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "key_points": self.key_points,
            "source_articles": self.source_articles,
            "estimated_reading_time": self.estimated_reading_time,
            "tone": self.tone,
        }


@dataclass
class ConsolidatedSummary(Summary):
    topic_groups: List[TopicGroup] = field(default_factory=list)
    consolidated_article_count: int = 0
    duplicates_removed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "topic_groups": [
                {
                    "id": group.id,
                    "topic": group.topic,
                    "articles": [article.id for article in group.articles],
                    "similarity": group.similarity,
                    "keywords": group.keywords,
                }
                for group in self.topic_groups
            ],
            "consolidated_article_count": self.consolidated_article_count,
            "duplicates_removed": self.duplicates_removed,
        })
        return data


@dataclass
class SummaryRequest:
    articles: List[NewsArticle]
    tone: str = DEFAULT_TONE
    max_reading_time: int = DEFAULT_READING_TIME
    user_id: str = "system"


@dataclass
class ConsolidationRequest:
    articles: List[NewsArticle]
    tone: str = DEFAULT_TONE
    max_reading_time: int = DEFAULT_READING_TIME
    user_id: str = "system"
    similarity_threshold: Optional[float] = None


@dataclass
class DeduplicationResult:
    unique_articles: List[NewsArticle]
    duplicates_removed: int


@dataclass
class ToneAdaptationRequest:
    content: str
    source_tone: str
    target_tone: str
    preserve_length: bool = False


@dataclass
class ToneAdaptationResult:
    adapted_content: str
    source_tone: str
    target_tone: str
    consistency_score: float


@dataclass
class ToneCharacteristics:
    description: str
    key_features: List[str]
    avoid_features: List[str]


@dataclass
class InteractionStats:
    """Feedback statistics for one category or source."""
    item: str
    total_interactions: int
    positive_interactions: int
    negative_interactions: int
    positive_ratio: float
    last_interaction: datetime
    trend: str = TREND_STABLE


@dataclass
class LearningInsights:
    """Derived view over a user's interaction log. Never persisted."""
    user_id: str
    total_interactions: int = 0
    learning_confidence: float = 0.0
    top_categories: List[InteractionStats] = field(default_factory=list)
    top_sources: List[InteractionStats] = field(default_factory=list)
    emerging_topics: List[str] = field(default_factory=list)
    declining_sources: List[str] = field(default_factory=list)
    recommended_preference_updates: Dict[str, List[str]] = field(default_factory=dict)
    last_analyzed: datetime = field(default_factory=utc_now)


@dataclass
class PreferenceChange:
    field: str
    old_value: Any
    new_value: Any
    reason: str
    confidence: float


@dataclass
class PreferenceUpdateResult:
    updated_preferences: UserPreferences
    changes: List[PreferenceChange]
    learning_insights: LearningInsights


@dataclass
class UserInteractionStats:
    total_interactions: int = 0
    recent_interactions: int = 0
    top_actions: List[Dict[str, Any]] = field(default_factory=list)
    activity_trend: str = TREND_STABLE
