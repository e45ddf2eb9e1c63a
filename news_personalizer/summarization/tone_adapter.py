"""
Tone adaptation and tone-consistency scoring.

Rewrites text between the formal, casual and fun registers with the
text-generation provider and scores how well a text matches a register,
falling back to a lexical heuristic when the provider cannot score it.
"""

import logging
import re
from typing import Dict, List, Optional

from ..concurrency import run_bounded
from ..config import SummarizationConfig
from ..exceptions import SummarizationError
from ..interfaces import TextGenerator
from ..models import TONES, ToneAdaptationRequest, ToneAdaptationResult, ToneCharacteristics
from .prompts import tone_adaptation_prompt, tone_validation_prompt

logger = logging.getLogger(__name__)

SCORE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)")
OUT_OF_TEN_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:/|out of)\s*10\b", re.IGNORECASE)

HEURISTIC_BASE_SCORE = 0.5
POSITIVE_MARKER_WEIGHT = 0.1
NEGATIVE_MARKER_WEIGHT = 0.15

# Markers are matched as lower-case substrings; each counts once
TONE_MARKERS: Dict[str, Dict[str, List[str]]] = {
    "formal": {
        "positive": ["furthermore", "therefore", "consequently", "moreover", "nevertheless", "accordingly"],
        "negative": ["gonna", "wanna", "yeah", "cool", "awesome", "hey"],
    },
    "casual": {
        "positive": ["you", "your", "we", "our", "let's", "here's", "that's", "it's"],
        "negative": ["furthermore", "consequently", "nevertheless", "henceforth", "wherein"],
    },
    "fun": {
        "positive": ["amazing", "awesome", "cool", "wow", "exciting", "fantastic", "!"],
        "negative": ["pursuant", "aforementioned", "heretofore", "notwithstanding"],
    },
}

TONE_CHARACTERISTICS: Dict[str, ToneCharacteristics] = {
    "formal": ToneCharacteristics(
        description="Professional, objective, and precise communication",
        key_features=[
            "Third-person perspective",
            "Complete sentences",
            "Technical vocabulary when appropriate",
            "Structured presentation",
            "Objective language",
        ],
        avoid_features=[
            "Contractions",
            "Slang or colloquialisms",
            "Personal opinions",
            "Casual expressions",
            "Incomplete sentences",
        ],
    ),
    "casual": ToneCharacteristics(
        description="Conversational, friendly, and approachable communication",
        key_features=[
            "Second-person perspective (you/your)",
            "Contractions and natural speech patterns",
            "Everyday vocabulary",
            "Personal connection",
            "Approachable tone",
        ],
        avoid_features=[
            "Overly formal language",
            "Complex sentence structures",
            "Technical jargon without explanation",
            "Distant or cold tone",
            "Excessive formality",
        ],
    ),
    "fun": ToneCharacteristics(
        description="Engaging, lively, and entertaining communication",
        key_features=[
            "Enthusiastic language",
            "Creative expressions",
            "Engaging storytelling",
            "Appropriate humor",
            "Dynamic vocabulary",
        ],
        avoid_features=[
            "Dry or boring presentation",
            "Overly serious tone",
            "Monotonous language",
            "Lack of personality",
            "Purely factual delivery",
        ],
    ),
}


def heuristic_tone_score(content: str, expected_tone: str) -> float:
    """Score ``content`` against ``expected_tone`` from lexical markers only."""
    markers = TONE_MARKERS.get(expected_tone)
    if markers is None:
        return HEURISTIC_BASE_SCORE

    lower_content = content.lower()
    positive_matches = sum(1 for marker in markers["positive"] if marker in lower_content)
    negative_matches = sum(1 for marker in markers["negative"] if marker in lower_content)

    score = HEURISTIC_BASE_SCORE + positive_matches * POSITIVE_MARKER_WEIGHT - negative_matches * NEGATIVE_MARKER_WEIGHT
    return min(max(score, 0.0), 1.0)


def parse_tone_score(response_text: str) -> Optional[float]:
    """
    Read a 0-10 rating reply, normalized into [0, 1].

    An "N/10" or "N out of 10" rating wins; otherwise the last number is the
    score, so a restated "0-10" scale ahead of it is skipped.
    """
    text = response_text or ""
    match = OUT_OF_TEN_PATTERN.search(text)
    if match:
        value = match.group(1)
    else:
        numbers = SCORE_PATTERN.findall(text)
        if not numbers:
            return None
        value = numbers[-1]
    return min(max(float(value) / 10, 0.0), 1.0)


class ToneAdapter:
    """
    Rewrites content between tones and scores tone consistency.

    Features:
    - No-op adaptation when source and target tone match
    - Optional length-preserving rewrite instruction
    - Provider-based scoring with a lexical fallback
    - Order-preserving batch adaptation with bounded concurrency
    """

    def __init__(self, generator: TextGenerator, config: Optional[SummarizationConfig] = None):
        self.generator = generator
        self.config = config or SummarizationConfig()
        self.config.validate()

    async def adapt_tone(self, request: ToneAdaptationRequest) -> ToneAdaptationResult:
        """
        Rewrite ``request.content`` into ``request.target_tone``.

        Args:
            request: Content plus source and target tone

        Returns:
            ToneAdaptationResult with the rewritten content and its consistency score

        Raises:
            SummarizationError: If the rewrite call fails
        """
        if request.source_tone == request.target_tone:
            return ToneAdaptationResult(
                adapted_content=request.content,
                source_tone=request.source_tone,
                target_tone=request.target_tone,
                consistency_score=1.0,
            )

        if request.target_tone not in TONES:
            raise SummarizationError(f"Unsupported tone: {request.target_tone}", code="INVALID_TONE")

        system_prompt, user_prompt = tone_adaptation_prompt(
            request.target_tone, request.content, request.preserve_length
        )
        try:
            adapted_content = (await self.generator.complete(system_prompt, user_prompt)).strip()
        except Exception as e:
            logger.error(f"Tone adaptation {request.source_tone} -> {request.target_tone} failed: {e}")
            raise SummarizationError(f"Failed to adapt tone: {e}", cause=e, code="TONE_ADAPTATION_FAILED") from e

        consistency_score = await self.validate_tone_consistency(adapted_content, request.target_tone)
        logger.debug(f"Adapted content to {request.target_tone} (consistency {consistency_score:.2f})")

        return ToneAdaptationResult(
            adapted_content=adapted_content,
            source_tone=request.source_tone,
            target_tone=request.target_tone,
            consistency_score=consistency_score,
        )

    async def validate_tone_consistency(self, content: str, expected_tone: str) -> float:
        """
        Score how well ``content`` matches ``expected_tone``, in [0, 1].

        Never raises: a failed or unparsable provider reply falls back to the
        lexical heuristic.
        """
        if expected_tone not in TONES:
            return heuristic_tone_score(content, expected_tone)

        system_prompt, user_prompt = tone_validation_prompt(expected_tone, content)
        try:
            response_text = await self.generator.complete(system_prompt, user_prompt)
        except Exception as e:
            logger.warning(f"Tone validation call failed, using heuristic: {e}")
            return heuristic_tone_score(content, expected_tone)

        score = parse_tone_score(response_text)
        if score is None:
            logger.warning(f"Unparsable tone score {response_text!r}, using heuristic")
            return heuristic_tone_score(content, expected_tone)
        return score

    async def batch_adapt_tone(self, contents: List[str], source_tone: str, target_tone: str,
                               preserve_length: bool = False,
                               max_concurrency: Optional[int] = None) -> List[ToneAdaptationResult]:
        """Adapt every item; results follow the input order."""
        requests = [
            ToneAdaptationRequest(
                content=content,
                source_tone=source_tone,
                target_tone=target_tone,
                preserve_length=preserve_length,
            )
            for content in contents
        ]
        return await run_bounded(
            self.adapt_tone,
            requests,
            max_concurrency or self.config.tone_batch_concurrency,
        )

    @staticmethod
    def get_tone_characteristics(tone: str) -> ToneCharacteristics:
        if tone not in TONE_CHARACTERISTICS:
            raise ValueError(f"Unknown tone: {tone}")
        return TONE_CHARACTERISTICS[tone]
