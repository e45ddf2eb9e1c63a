"""
Configuration system for the personalized news feed core.

This module defines configuration parameters for every component, with the
documented defaults, and loaders for environment variables, JSON/YAML files
and plain dictionaries. Services validate their section at construction time.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List
import json
import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .models import TONES, MIN_READING_TIME, MAX_READING_TIME

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class EmbeddingConfig:
    """Configuration for text embedding generation."""
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    max_length: int = 512
    normalize_embeddings: bool = True
    device: str = "auto"  # "auto", "cpu", or "cuda"
    max_workers: int = 4


@dataclass
class LLMConfig:
    """Configuration for the text-generation provider."""
    model_name: str = "gemini-1.5-flash"
    temperature: float = 0.3
    max_output_tokens: int = 2000
    timeout: int = 30  # Request timeout in seconds
    api_key: Optional[str] = None


@dataclass
class SupabaseConfig:
    """Configuration for the Supabase-backed index and datastore."""
    url: Optional[str] = None
    key: Optional[str] = None
    vector_dimension: int = 384  # For all-MiniLM-L6-v2
    match_count: int = 50
    chunks_table: str = "article_chunks"
    articles_table: str = "articles"
    interactions_table: str = "user_interactions"
    preferences_table: str = "user_preferences"


@dataclass
class PreferenceQueryConfig:
    """Configuration for preference to query conversion."""
    topic_weight: float = 0.7
    source_weight: float = 0.3
    fallback_topics: List[str] = field(default_factory=lambda: ["general news", "current events", "breaking news"])
    max_query_length: int = 500

    def validate(self) -> bool:
        if self.topic_weight <= 0 or self.source_weight < 0:
            raise ValueError("topic_weight must be positive and source_weight non-negative")
        if not self.fallback_topics:
            raise ValueError("fallback_topics must not be empty")
        if self.max_query_length < 1:
            raise ValueError("max_query_length must be at least 1")
        return True


@dataclass
class SemanticSearchConfig:
    """Configuration for semantic search and re-ranking."""
    relevance_threshold: float = 0.3
    fallback_relevance_threshold: float = 0.1
    max_results: int = 10
    enable_category_boost: bool = True
    category_boost_factor: float = 1.2
    enable_source_boost: bool = True
    source_boost_factor: float = 1.1
    enable_recency_boost: bool = True
    recency_boost_decay_days: float = 7
    recency_boost_max: float = 0.2
    fallback_to_popular: bool = True

    def validate(self) -> bool:
        for name in ("relevance_threshold", "fallback_relevance_threshold"):
            if not 0 <= getattr(self, name) <= 1:
                raise ValueError(f"{name} must be between 0 and 1")
        if self.max_results < 1:
            raise ValueError("max_results must be at least 1")
        if self.category_boost_factor < 1.0 or self.source_boost_factor < 1.0:
            raise ValueError("boost factors must be at least 1.0")
        if self.recency_boost_decay_days <= 0:
            raise ValueError("recency_boost_decay_days must be positive")
        if self.recency_boost_max < 0:
            raise ValueError("recency_boost_max must be non-negative")
        return True


@dataclass
class InteractionLearnerConfig:
    """Configuration for learning preferences from implicit feedback."""
    learning_rate: float = 0.1
    decay_factor: float = 0.95
    min_interactions_for_learning: int = 5
    max_interaction_history: int = 1000
    min_confidence_for_update: float = 0.3
    positive_actions: List[str] = field(default_factory=lambda: ["read_more", "like", "share"])
    negative_actions: List[str] = field(default_factory=lambda: ["hide"])
    category_learning_enabled: bool = True
    source_learning_enabled: bool = True
    topic_learning_enabled: bool = True
    max_topics: int = 10
    max_preferred_sources: int = 8
    max_excluded_sources: int = 5

    def validate(self) -> bool:
        if self.min_interactions_for_learning < 1:
            raise ValueError("min_interactions_for_learning must be at least 1")
        if self.max_interaction_history < self.min_interactions_for_learning:
            raise ValueError("max_interaction_history must be >= min_interactions_for_learning")
        if set(self.positive_actions) & set(self.negative_actions):
            raise ValueError("positive_actions and negative_actions must not overlap")
        if not 0 <= self.min_confidence_for_update <= 1:
            raise ValueError("min_confidence_for_update must be between 0 and 1")
        return True


@dataclass
class SummarizationConfig:
    """Configuration for summarization, consolidation and tone adaptation."""
    default_similarity_threshold: float = 0.7
    category_fallback_similarity: float = 0.8
    max_key_points: int = 5
    max_consolidated_key_points: int = 6
    article_excerpt_chars: int = 500
    tone_batch_concurrency: int = 1

    def validate(self) -> bool:
        if not 0 <= self.default_similarity_threshold <= 1:
            raise ValueError("default_similarity_threshold must be between 0 and 1")
        if self.tone_batch_concurrency < 1:
            raise ValueError("tone_batch_concurrency must be at least 1")
        return True


@dataclass
class ProcessingConfig:
    """Configuration for the feed pipeline."""
    default_tone: str = "casual"
    default_reading_time: int = 5
    log_level: str = "INFO"


@dataclass
class FeedConfig:
    """Main configuration class containing all component configurations."""
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    query: PreferenceQueryConfig = field(default_factory=PreferenceQueryConfig)
    search: SemanticSearchConfig = field(default_factory=SemanticSearchConfig)
    learner: InteractionLearnerConfig = field(default_factory=InteractionLearnerConfig)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)

    @classmethod
    def from_env(cls) -> 'FeedConfig':
        """Create configuration from environment variables (and a local .env file)."""
        load_dotenv()
        config = cls()

        if url := os.getenv("SUPABASE_URL"):
            config.supabase.url = url

        if key := os.getenv("SUPABASE_KEY"):
            config.supabase.key = key

        if api_key := os.getenv("GEMINI_API_KEY"):
            config.llm.api_key = api_key

        if llm_model := os.getenv("LLM_MODEL"):
            config.llm.model_name = llm_model

        if model_name := os.getenv("EMBEDDING_MODEL"):
            config.embedding.model_name = model_name

        if threshold := os.getenv("RELEVANCE_THRESHOLD"):
            config.search.relevance_threshold = float(threshold)

        if max_results := os.getenv("MAX_RESULTS"):
            config.search.max_results = int(max_results)

        if min_interactions := os.getenv("MIN_INTERACTIONS_FOR_LEARNING"):
            config.learner.min_interactions_for_learning = int(min_interactions)

        if max_history := os.getenv("MAX_INTERACTION_HISTORY"):
            config.learner.max_interaction_history = int(max_history)

        if log_level := os.getenv("LOG_LEVEL"):
            config.processing.log_level = log_level

        return config

    @classmethod
    def from_file(cls, config_path: str) -> 'FeedConfig':
        """Load configuration from a JSON or YAML file."""
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r') as f:
            if config_path.endswith('.json'):
                config_data = json.load(f)
            elif config_path.endswith(('.yml', '.yaml')):
                config_data = yaml.safe_load(f)
            else:
                raise ValueError("Configuration file must be JSON (.json) or YAML (.yml/.yaml)")

        return cls.from_dict(config_data or {})

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'FeedConfig':
        """Create configuration from dictionary. Unknown keys are ignored."""
        config = cls()

        for section_name, section_config in config_dict.items():
            if hasattr(config, section_name) and isinstance(section_config, dict):
                section_obj = getattr(config, section_name)
                for key, value in section_config.items():
                    if hasattr(section_obj, key):
                        setattr(section_obj, key, value)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, leaving secrets out."""
        data = asdict(self)
        data["llm"].pop("api_key", None)
        data["supabase"].pop("key", None)
        return data

    def validate(self) -> bool:
        """Validate configuration parameters."""
        self.query.validate()
        self.search.validate()
        self.learner.validate()
        self.summarization.validate()

        if self.processing.default_tone not in TONES:
            raise ValueError(f"default_tone must be one of {TONES}")

        if not MIN_READING_TIME <= self.processing.default_reading_time <= MAX_READING_TIME:
            raise ValueError(
                f"default_reading_time must be between {MIN_READING_TIME} and {MAX_READING_TIME}"
            )

        return True


def get_config() -> FeedConfig:
    """
    Get configuration instance.

    Priority order:
    1. Configuration file (if FEED_CONFIG_FILE is set)
    2. Environment variables
    3. Default configuration
    """
    config_file = os.getenv("FEED_CONFIG_FILE")

    if config_file:
        try:
            config = FeedConfig.from_file(config_file)
        except (FileNotFoundError, ValueError) as e:
            logging.getLogger(__name__).warning(f"Could not load config file {config_file}: {e}")
            config = FeedConfig.from_env()
    else:
        config = FeedConfig.from_env()

    config.validate()

    return config


def setup_logging(level: str = "INFO"):
    """Configure root logging in the format used across the project."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
