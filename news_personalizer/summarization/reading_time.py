"""
Reading time estimation and length budgeting.

Pure functions, no I/O. Reading speed is fixed at 200 words per minute.
"""

import math
from typing import Dict

WORDS_PER_MINUTE = 200
SENTENCE_ENDINGS = ".!?"


def count_words(text: str) -> int:
    """Count whitespace-separated tokens; punctuation stays attached to its word."""
    return len(text.split()) if text else 0


def estimate_reading_time(text: str) -> int:
    """Minutes needed to read ``text``, never less than 1."""
    return max(1, math.ceil(count_words(text) / WORDS_PER_MINUTE))


def calculate_target_word_count(minutes: float) -> int:
    return int(math.floor(minutes * WORDS_PER_MINUTE))


def adjust_content_length(content: str, target_minutes: float) -> str:
    """
    Fit ``content`` into the word budget of ``target_minutes``.

    Content that already fits is returned unchanged. Otherwise it is cut to the
    budget and then back to the last sentence-ending punctuation mark, when the
    cut text contains one.
    """
    target_word_count = calculate_target_word_count(target_minutes)
    words = content.split()

    if len(words) <= target_word_count:
        return content

    truncated = ' '.join(words[:target_word_count])
    last_sentence_end = max(truncated.rfind(mark) for mark in SENTENCE_ENDINGS)

    if last_sentence_end >= 0:
        return truncated[:last_sentence_end + 1]

    return truncated


def generate_reading_time_summary(text: str) -> Dict[str, int]:
    return {
        'estimated_minutes': estimate_reading_time(text),
        'word_count': count_words(text),
        'character_count': len(text),
    }
