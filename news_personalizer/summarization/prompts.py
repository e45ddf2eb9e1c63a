# --- Prompts for summarization, consolidation and tone work ---
# Each function returns a (system_prompt, user_prompt) pair.

from typing import Tuple

BASE_SUMMARIZER_INSTRUCTIONS = (
    "You are an expert news summarizer. Create a concise, accurate summary that "
    "captures the key information and main points."
)

TONE_SYSTEM_STYLE = {
    "formal": "Use a professional, objective tone. Write in third person. Use precise language and maintain journalistic standards.",
    "casual": "Use a conversational, approachable tone. Write as if explaining to a friend. Keep it engaging but informative.",
    "fun": "Use an engaging, lively tone with appropriate humor where suitable. Make it interesting and memorable while staying accurate.",
}

TONE_USER_STYLE = {
    "formal": (
        "in a formal, professional tone. Focus on facts, key developments, and implications. "
        "Avoid casual language or personal opinions.",
        "Structured summary with key points",
    ),
    "casual": (
        "in a casual, conversational tone. Make it easy to understand and engaging, "
        "like you're telling a friend about what happened.",
        "Friendly summary with main takeaways",
    ),
    "fun": (
        "in a fun, engaging tone. Add some personality and make it interesting to read, "
        "but keep all the important facts accurate.",
        "Engaging summary with personality",
    ),
}

TONE_DESCRIPTIONS = {
    "formal": "professional, objective, and precise",
    "casual": "conversational, friendly, and approachable",
    "fun": "engaging, lively, and entertaining while remaining accurate",
}

TONE_VALIDATION_DESCRIPTIONS = {
    "formal": "professional, objective, precise, and uses formal language structures",
    "casual": "conversational, friendly, approachable, and uses everyday language",
    "fun": "engaging, lively, entertaining, and uses creative language while remaining informative",
}

PRESERVE_LENGTH_INSTRUCTION = (
    "\n\nIMPORTANT: Keep the adapted content approximately the same length as the original."
)


def summary_prompt(tone: str, content: str, target_minutes: int, target_words: int) -> Tuple[str, str]:
    instructions, output_format = TONE_USER_STYLE.get(tone, TONE_USER_STYLE["casual"])
    system = f"{BASE_SUMMARIZER_INSTRUCTIONS} {TONE_SYSTEM_STYLE.get(tone, TONE_SYSTEM_STYLE['casual'])}"
    user = f"""Please summarize the following news {instructions}

Article: {content}

Target reading time: {target_minutes} minutes (no more than {target_words} words)
Required format: {output_format}"""
    return system, user


def key_points_prompt(content: str) -> Tuple[str, str]:
    system = (
        "You are an expert at extracting key information from news articles. "
        "Identify the most important points that readers need to know."
    )
    user = f"""Extract 3-5 key points from the following news article. Each point should be a concise, standalone fact or development.

Article: {content}

Format your response as a JSON array of strings, like this:
["Key point 1", "Key point 2", "Key point 3"]"""
    return system, user


def topic_grouping_prompt(articles_text: str) -> Tuple[str, str]:
    system = (
        "You are an expert at analyzing news articles and identifying similar topics. "
        "Group articles that cover the same or closely related topics."
    )
    user = f"""Analyze these news articles and group them by topic. Articles should be grouped together if they discuss the same event, person, company, or closely related themes.

{articles_text}

For each group, provide:
1. A descriptive topic name
2. The article numbers that belong to this group
3. A similarity score (0-1) indicating how closely related the articles are
4. 3-5 key keywords that represent the topic

Respond ONLY with JSON in this shape:
{{
  "groups": [
    {{
      "topic": "Topic name",
      "articleIndices": [1, 3, 5],
      "similarity": 0.85,
      "keywords": ["keyword1", "keyword2", "keyword3"]
    }}
  ]
}}"""
    return system, user


def consolidation_prompt(articles_text: str, target_minutes: int, target_words: int, tone: str) -> Tuple[str, str]:
    system = (
        "You are an expert at consolidating multiple news articles about the same topic "
        "into a comprehensive summary."
    )
    user = f"""Create a consolidated summary from these related news articles. Combine the information while avoiding redundancy. Highlight different perspectives or new developments.

Articles:
{articles_text}

Target reading time: {target_minutes} minutes (no more than {target_words} words)
Tone: {tone} ({TONE_DESCRIPTIONS.get(tone, TONE_DESCRIPTIONS['casual'])})

Create a unified summary that captures all important information from these sources."""
    return system, user


def tone_adaptation_prompt(target_tone: str, content: str, preserve_length: bool = False) -> Tuple[str, str]:
    system = "You are an expert at adapting text tone while preserving all factual content and meaning."
    user = f"""Rewrite the following text to be {TONE_DESCRIPTIONS[target_tone]}. Keep all facts and key information exactly the same, only change the tone and style.

Original text: {content}

Rewrite this in a {target_tone} tone."""
    if preserve_length:
        user += PRESERVE_LENGTH_INSTRUCTION
    return system, user


def tone_validation_prompt(expected_tone: str, content: str) -> Tuple[str, str]:
    system = (
        "You are an expert at evaluating text tone and style. "
        "Rate how well the text matches the expected tone on a scale of 0-10."
    )
    user = f"""Evaluate how well the following text matches a {expected_tone} tone. A {expected_tone} tone should be {TONE_VALIDATION_DESCRIPTIONS[expected_tone]}.

Text to evaluate: {content}

Rate the tone consistency on a scale of 0-10, where:
- 0-3: Does not match the expected tone at all
- 4-6: Partially matches the expected tone
- 7-8: Mostly matches the expected tone
- 9-10: Perfectly matches the expected tone

Provide only the numerical score (e.g., "7.5")."""
    return system, user
