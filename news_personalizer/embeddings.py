"""
Sentence embedding generation for preference queries and article chunks.

This module provides the embedding provider used by the query converter and
semantic search, backed by SentenceTransformers. Encoding runs in a thread
pool so the async services never block the event loop.
"""

import logging
import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import List

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from .config import EmbeddingConfig
from .interfaces import EmbeddingProvider

logger = logging.getLogger(__name__)


class EmbeddingManager(EmbeddingProvider):
    """
    SentenceTransformers-backed embedding provider.

    Unlike chunk indexing, a failed query embedding has no safe fallback, so
    encoding errors propagate to the caller.
    """

    def __init__(self, config: EmbeddingConfig):
        """
        Initialize the embedding manager.

        Args:
            config: Embedding configuration parameters
        """
        self.config = config
        self.model = None
        self.device = None
        self._executor = ThreadPoolExecutor(max_workers=config.max_workers)

        self._initialize_model()

    def _initialize_model(self):
        """Initialize the SentenceTransformer model."""
        try:
            logger.info(f"Loading embedding model: {self.config.model_name}")

            if self.config.device == "auto":
                self.device = "cuda" if torch.cuda.is_available() else "cpu"
            else:
                self.device = self.config.device

            self.model = SentenceTransformer(self.config.model_name, device=self.device)

            if hasattr(self.model, 'max_seq_length'):
                self.model.max_seq_length = self.config.max_length

            logger.info(f"Embedding model loaded on {self.device}, "
                        f"dimension {self.model.get_sentence_embedding_dimension()}")

        except Exception as e:
            logger.error(f"Failed to initialize embedding model: {e}")
            raise

    @property
    def embedding_dimension(self) -> int:
        if self.model:
            return self.model.get_sentence_embedding_dimension()
        return 384  # Default for all-MiniLM-L6-v2

    def _preprocess_text_for_embedding(self, text: str) -> str:
        # Rough character estimate of the token limit
        if len(text) > self.config.max_length * 4:
            text = text[:self.config.max_length * 4]

        return ' '.join(text.split())

    def encode_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text

        Returns:
            Embedding vector as list of floats
        """
        if not text or not text.strip():
            return [0.0] * self.embedding_dimension

        embedding = self.model.encode(
            self._preprocess_text_for_embedding(text),
            normalize_embeddings=self.config.normalize_embeddings,
            show_progress_bar=False
        )
        return np.asarray(embedding, dtype=float).tolist()

    async def embed(self, text: str) -> List[float]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.encode_single, text)

    def close(self):
        self._executor.shutdown(wait=False)
