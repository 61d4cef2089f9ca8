"""Test that adapters satisfy the TextEmbedding protocol."""

from typing import List

import pytest

from memory_vectordb.embeddings import TextEmbedding


class StaticEmbedding:
    """Minimal embedder used to check the protocol shape."""

    dimension = 2
    model_name = "static"

    async def embed_document(self, text: str) -> List[float]:
        return [1.0, 0.0]

    async def embed_query(self, text: str) -> List[float]:
        return [1.0, 0.0]

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [[1.0, 0.0] for _ in texts]


def test_custom_embedder_is_protocol():
    assert isinstance(StaticEmbedding(), TextEmbedding)


def test_incomplete_embedder_is_not_protocol():
    class NoBatch:
        dimension = 2
        model_name = "partial"

        async def embed_document(self, text):
            return [1.0, 0.0]

    assert not isinstance(NoBatch(), TextEmbedding)


def test_openai_is_protocol(monkeypatch):
    """OpenAIEmbedding implements TextEmbedding protocol."""
    pytest.importorskip("openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key-for-testing")

    from memory_vectordb.embeddings import OpenAIEmbedding

    embedder = OpenAIEmbedding(model="text-embedding-3-small", dimensions=768)

    assert isinstance(embedder, TextEmbedding)
    assert embedder.dimension == 768
    assert embedder.model_name == "text-embedding-3-small"
