"""
Personalization components: preference query conversion, semantic search
and interaction learning.
"""

from .query_converter import PreferenceQueryConverter
from .semantic_search import SemanticSearchService
from .interaction_learner import InteractionLearner

__all__ = [
    "PreferenceQueryConverter",
    "SemanticSearchService",
    "InteractionLearner",
]
