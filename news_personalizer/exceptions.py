"""
Error types raised by the personalization core.

Fatal failures (embedding, vector index, datastore, final LLM generation) are
wrapped in one of these so callers can map them to a degraded response.
"""

from typing import Optional


class NewsPersonalizerError(Exception):
    """Base error carrying the message of the underlying cause."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.code = code

    def __str__(self) -> str:
        return self.message


class SemanticSearchError(NewsPersonalizerError):
    """Raised when query conversion or the vector index fails."""


class InteractionLearnerError(NewsPersonalizerError):
    """Raised when the interaction log or preference record cannot be read or written."""


class SummarizationError(NewsPersonalizerError):
    """Raised when summary, key point or consolidation generation fails."""
