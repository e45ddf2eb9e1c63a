"""
Text-generation provider built on LangChain chat models.

Grouping, summarization, key point extraction, tone adaptation and tone
scoring all go through ``TextGenerator.complete``; the default model is
Gemini via ``langchain_google_genai``.
"""

import logging
from typing import Any, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from .config import LLMConfig
from .interfaces import TextGenerator

logger = logging.getLogger(__name__)


def create_gemini_llm(config: LLMConfig, api_key: Optional[str] = None) -> ChatGoogleGenerativeAI:
    """Build the default chat model from configuration."""
    api_key = api_key or config.api_key
    if not api_key:
        raise ValueError("Gemini API key is required")

    logger.info(f"Initializing Gemini chat model: {config.model_name}")
    return ChatGoogleGenerativeAI(
        model=config.model_name,
        temperature=config.temperature,
        max_output_tokens=config.max_output_tokens,
        timeout=config.timeout,
        google_api_key=api_key,
    )


class LangChainTextGenerator(TextGenerator):
    """Adapts any LangChain chat model (or Runnable) to the ``complete`` contract."""

    def __init__(self, llm: BaseChatModel):
        self.llm = llm

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        response = await self.llm.ainvoke(messages)
        return _content_to_text(getattr(response, "content", response))


def _content_to_text(content: Any) -> str:
    # Chat models may answer with a list of content parts instead of a string
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(str(part.get("text", "")))
            else:
                parts.append(str(part))
        return "".join(parts).strip()
    return str(content).strip()
