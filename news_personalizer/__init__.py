"""
Personalized news feed core.

Retrieves articles relevant to a user's preferences, learns from implicit
feedback, and consolidates the results into a tone- and length-bounded
summary. Provider-backed collaborators (embeddings, LLM, Supabase) live in
their own modules and are imported on demand.
"""

from .agent import PersonalizedFeedAgent
from .config import FeedConfig, get_config, setup_logging
from .exceptions import (
    InteractionLearnerError,
    NewsPersonalizerError,
    SemanticSearchError,
    SummarizationError,
)
from .personalization import InteractionLearner, PreferenceQueryConverter, SemanticSearchService
from .summarization import SummarizationService, ToneAdapter, TopicConsolidator

__version__ = "0.1.0"

__all__ = [
    "PersonalizedFeedAgent",
    "FeedConfig",
    "get_config",
    "setup_logging",
    "NewsPersonalizerError",
    "SemanticSearchError",
    "InteractionLearnerError",
    "SummarizationError",
    "PreferenceQueryConverter",
    "SemanticSearchService",
    "InteractionLearner",
    "SummarizationService",
    "ToneAdapter",
    "TopicConsolidator",
]
