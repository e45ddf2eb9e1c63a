"""
Summarization components: reading time budgeting, tone adaptation,
topic consolidation and summary generation.
"""

from .reading_time import (
    WORDS_PER_MINUTE,
    adjust_content_length,
    calculate_target_word_count,
    count_words,
    estimate_reading_time,
    generate_reading_time_summary,
)
from .tone_adapter import ToneAdapter
from .topic_consolidator import TopicConsolidator
from .summarization_service import SummarizationService

__all__ = [
    "WORDS_PER_MINUTE",
    "adjust_content_length",
    "calculate_target_word_count",
    "count_words",
    "estimate_reading_time",
    "generate_reading_time_summary",
    "ToneAdapter",
    "TopicConsolidator",
    "SummarizationService",
]
