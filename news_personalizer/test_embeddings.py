import asyncio

import numpy as np
import pytest

from news_personalizer import embeddings
from news_personalizer.config import EmbeddingConfig


class FakeSentenceTransformer:
    def __init__(self, model_name, device=None):
        self.model_name = model_name
        self.device = device
        self.max_seq_length = 256
        self.encoded = []

    def get_sentence_embedding_dimension(self):
        return 3

    def encode(self, text, normalize_embeddings=True, show_progress_bar=False):
        self.encoded.append(text)
        return np.array([0.5, 0.25, 0.125], dtype=np.float32)


@pytest.fixture
def manager(monkeypatch):
    monkeypatch.setattr(embeddings, "SentenceTransformer", FakeSentenceTransformer)
    manager = embeddings.EmbeddingManager(EmbeddingConfig(device="cpu", max_length=64))
    yield manager
    manager.close()


def test_model_settings_applied(manager):
    assert manager.device == "cpu"
    assert manager.model.max_seq_length == 64
    assert manager.embedding_dimension == 3


def test_embed_normalizes_whitespace(manager):
    vector = asyncio.run(manager.embed("  markets   rally\n today "))

    assert vector == [0.5, 0.25, 0.125]
    assert manager.model.encoded == ["markets rally today"]


def test_blank_text_gives_zero_vector(manager):
    assert manager.encode_single("   ") == [0.0, 0.0, 0.0]
    assert manager.model.encoded == []


def test_model_load_failure_propagates(monkeypatch):
    def broken(*args, **kwargs):
        raise OSError("model not found")

    monkeypatch.setattr(embeddings, "SentenceTransformer", broken)
    with pytest.raises(OSError):
        embeddings.EmbeddingManager(EmbeddingConfig(device="cpu"))
