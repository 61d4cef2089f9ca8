"""
Text embedding abstractions for memory-vectordb.

Provides the protocol used by the memory service and an OpenAI adapter:
- OpenAIEmbedding: OpenAI API embeddings (requires the ``openai`` extra)
"""

from memory_vectordb.embeddings.protocol import TextEmbedding

__all__ = [
    "TextEmbedding",
]

# Optional adapters (import only if dependencies available)
try:
    from memory_vectordb.embeddings.openai_embedding import OpenAIEmbedding  # noqa: F401

    __all__.append("OpenAIEmbedding")
except ImportError:
    pass
